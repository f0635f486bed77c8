"""Outbound generation calls: budgets, retries, prompts, streaming and backends."""

from .client import GenerationClient, GenerationStream
from .factory import create_generation_client
from .prompts import (
    PLAN_SCHEMA,
    STRATEGIES,
    build_prompt,
    estimate_cost,
    estimate_token_count,
    resolve_strategy,
)
from .rate_limiter import RateLimiter, RateLimitToken
from .retry import ErrorClass, RetryOutcome, RetryPolicy, classify_error, with_retry
from .stream import StreamAccumulator, accumulate_text, decode_plan, parse_document

__all__ = [
    "ErrorClass",
    "GenerationClient",
    "GenerationStream",
    "PLAN_SCHEMA",
    "RateLimitToken",
    "RateLimiter",
    "RetryOutcome",
    "RetryPolicy",
    "STRATEGIES",
    "StreamAccumulator",
    "accumulate_text",
    "build_prompt",
    "classify_error",
    "create_generation_client",
    "decode_plan",
    "estimate_cost",
    "estimate_token_count",
    "parse_document",
    "resolve_strategy",
    "with_retry",
]
