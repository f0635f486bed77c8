"""OpenAI-compatible chat completions backend with streaming."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, AsyncIterator, Mapping

import openai
from openai import AsyncOpenAI

from subdivision_planner.config import GenerationConfig, OpenAIConfig
from subdivision_planner.errors import FatalCallFailure, GenerationError, TransientCallFailure
from subdivision_planner.generation.client import GenerationClient, GenerationStream
from subdivision_planner.models import TokenUsage
from subdivision_planner.utils.env import load_repo_dotenv

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 409, 429}


class OpenAIGenerationClient(GenerationClient):
    """Structured plan generation through the ``openai`` SDK."""

    def __init__(
        self,
        config: OpenAIConfig | None = None,
        generation: GenerationConfig | None = None,
        *,
        sdk_client: AsyncOpenAI | None = None,
    ) -> None:
        config = config or OpenAIConfig()
        self._generation = generation or GenerationConfig()
        self.model = config.model
        self.input_cost_per_million = config.input_cost_per_million
        self.output_cost_per_million = config.output_cost_per_million
        if sdk_client is not None:
            self._client = sdk_client
            return
        load_repo_dotenv()
        api_base = config.api_base or os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
        api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            # Local OpenAI-compatible endpoints (vLLM, llama.cpp) accept any key.
            if "localhost" in api_base or "127.0.0.1" in api_base:
                api_key = "EMPTY"
            else:
                raise ValueError(
                    "OpenAI API key required. Set OPENAI_API_KEY environment variable or "
                    "provide api_key in config."
                )
        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "organization": config.org_id or os.getenv("OPENAI_ORG_ID"),
            "base_url": api_base,
            # Retries are owned by the pipeline's retry handler.
            "max_retries": 0,
        }
        if config.client_timeout is not None:
            client_kwargs["timeout"] = float(config.client_timeout)
        self._client = AsyncOpenAI(**client_kwargs)

    def _payload(self, prompt: str, schema: Mapping[str, Any], stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._generation.temperature,
            "max_tokens": self._generation.max_output_tokens,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "subdivision_plan", "schema": dict(schema)},
            },
        }
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    async def generate(
        self,
        prompt: str,
        schema: Mapping[str, Any],
        *,
        stream: bool = True,
    ) -> GenerationStream:
        logger.info("Starting %s generation with %s", "streaming" if stream else "blocking", self.model)
        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                **self._payload(prompt, schema, stream)
            )
        except openai.OpenAIError as exc:
            raise _translate_error(exc, side_effect=False) from exc
        if not stream:
            usage = _usage_from(getattr(response, "usage", None))
            text = ""
            if response.choices:
                text = response.choices[0].message.content or ""
            logger.info(
                "Generation finished in %.0f ms (%d tokens)",
                (time.perf_counter() - start) * 1000.0,
                usage.total_tokens,
            )
            return GenerationStream(text=text, usage=usage)
        usage = TokenUsage()
        return GenerationStream(chunks=self._iterate(response, usage), usage=usage)

    async def _iterate(self, response: Any, usage: TokenUsage) -> AsyncIterator[str]:
        received = False
        try:
            async for chunk in response:
                if getattr(chunk, "usage", None) is not None:
                    final = _usage_from(chunk.usage)
                    usage.prompt_tokens = final.prompt_tokens
                    usage.completion_tokens = final.completion_tokens
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    received = True
                    yield delta
        except openai.OpenAIError as exc:
            raise _translate_error(exc, side_effect=received) from exc


def _usage_from(raw: Any) -> TokenUsage:
    if raw is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=int(getattr(raw, "prompt_tokens", 0) or 0),
        completion_tokens=int(getattr(raw, "completion_tokens", 0) or 0),
    )


def _translate_error(exc: openai.OpenAIError, *, side_effect: bool) -> GenerationError:
    if isinstance(exc, openai.APITimeoutError):
        return TransientCallFailure(f"Request timed out: {exc}", side_effect=True)
    if isinstance(exc, openai.APIConnectionError):
        return TransientCallFailure(f"Connection error: {exc}", side_effect=side_effect)
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        retry_after = _parse_retry_after(exc.response.headers.get("retry-after"))
        if status in _RETRYABLE_STATUS or status >= 500:
            return TransientCallFailure(
                f"HTTP {status}: {exc.message}",
                status_code=status,
                side_effect=side_effect,
                retry_after=retry_after,
            )
        return FatalCallFailure(f"HTTP {status}: {exc.message}", status_code=status)
    return FatalCallFailure(f"{exc.__class__.__name__}: {exc}")


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(0.0, seconds)


__all__ = ["OpenAIGenerationClient"]
