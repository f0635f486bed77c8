"""End-to-end orchestration: variants, budgeted calls, validation and lifecycle."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from subdivision_planner.config import PlannerConfig
from subdivision_planner.errors import Cancelled, PlannerError, RetryExhausted
from subdivision_planner.generation.client import GenerationClient
from subdivision_planner.generation.factory import create_generation_client
from subdivision_planner.generation.prompts import PLAN_SCHEMA, build_prompt, resolve_strategy
from subdivision_planner.generation.rate_limiter import RateLimiter
from subdivision_planner.generation.retry import RetryPolicy, with_retry
from subdivision_planner.generation.stream import StreamAccumulator, accumulate_text, decode_plan
from subdivision_planner.models import (
    Candidate,
    GeneratedPlan,
    GenerationRequest,
    GenerationStatus,
    Ranking,
    RawModelResponse,
    RoadLayout,
    ValidationResult,
    VariantParams,
    utc_now,
)
from subdivision_planner.planning.lifecycle import PlanLifecycleManager
from subdivision_planner.planning.ranking import rank_candidates
from subdivision_planner.planning.validator import validate_plan
from subdivision_planner.planning.variants import build_variations, variant_request
from subdivision_planner.progress import NullProgressSink, ProgressEvent, ProgressSink, ProgressStatus

logger = logging.getLogger(__name__)

# Streaming progress events are emitted once per this many chunks.
_PROGRESS_EVERY_CHUNKS = 10


@dataclass(slots=True)
class GenerationResult:
    candidate: Candidate
    validation: ValidationResult | None = None
    error: PlannerError | None = None
    attempts: int = 0
    possibly_duplicated: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def user_message(self) -> str | None:
        """Last underlying error plus attempt count, for display."""

        if self.error is None:
            return None
        if isinstance(self.error, RetryExhausted):
            return self.error.user_message
        noun = "attempt" if self.attempts == 1 else "attempts"
        return f"{self.error.user_message} (failed after {self.attempts} {noun})"


@dataclass(slots=True)
class BatchResult:
    """Per-variant results in variant-index order, plus rankings of the successes."""

    results: list[GenerationResult]
    rankings: list[Ranking]
    variants: list[VariantParams] = field(default_factory=list)

    @property
    def completed(self) -> list[Candidate]:
        return [result.candidate for result in self.results if result.ok]

    @property
    def failed(self) -> list[GenerationResult]:
        return [result for result in self.results if not result.ok]

    @property
    def best(self) -> Ranking | None:
        return self.rankings[0] if self.rankings else None


@dataclass(slots=True)
class SessionCost:
    calls: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    started_at: str = field(default_factory=utc_now)


class SubdivisionPlanner:
    """Generates, validates, ranks and tracks subdivision plan candidates."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        config: PlannerConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        lifecycle: PlanLifecycleManager | None = None,
        progress: ProgressSink | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or PlannerConfig()
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter(self.config.rate_limits)
        if self.config.service_name not in self.rate_limiter.services:
            raise ValueError(
                f"No rate limit configured for service '{self.config.service_name}'."
            )
        self.lifecycle = lifecycle or PlanLifecycleManager(
            max_rejection_reason=self.config.max_rejection_reason
        )
        self.progress = progress or NullProgressSink()
        self.retry_policy = RetryPolicy.from_config(self.config.retry)
        self._sleep = sleep
        self._rng = rng
        self._costs: dict[str, SessionCost] = {}

    @classmethod
    def from_config(
        cls,
        config: PlannerConfig,
        *,
        progress: ProgressSink | None = None,
    ) -> "SubdivisionPlanner":
        client = create_generation_client(config.llm, config.generation)
        return cls(client, config=config, progress=progress)

    # ------------------------------------------------------------------ #
    # Generation
    # ------------------------------------------------------------------ #

    async def generate(
        self,
        project_id: str,
        request: GenerationRequest,
        *,
        strategy: str | None = None,
        variant_index: int | None = None,
    ) -> GenerationResult:
        """Generate one candidate.

        Call failures are retried per the retry policy and then recorded on
        a failed candidate; they are returned, not raised. Cancelling the
        awaiting task marks the candidate failed and re-raises.
        """

        chosen = resolve_strategy(strategy if strategy is not None else request.strategy)
        prompt = build_prompt(request, chosen, rules=self.config.validation)
        candidate = self.lifecycle.record_pending(
            project_id,
            request,
            variant_index=variant_index,
            strategy=chosen,
            model=self.client.model,
        )
        self._emit(
            ProgressStatus.STARTED,
            "Generating subdivision plan...",
            variant_index=variant_index,
            candidate_id=candidate.id,
        )
        cost = self._session(project_id)
        attempt = 0
        calling = False

        async def _attempt() -> tuple[RawModelResponse, GeneratedPlan]:
            nonlocal attempt, calling
            attempt += 1
            calling = False
            await self.rate_limiter.acquire(self.config.service_name)
            calling = True
            cost.calls += 1
            self._emit(
                ProgressStatus.PROCESSING,
                f"Calling {self.client.model}...",
                attempt=attempt,
                variant_index=variant_index,
                candidate_id=candidate.id,
            )
            response = await self.client.generate(
                prompt, PLAN_SCHEMA, stream=self.config.generation.stream
            )
            if response.streaming:
                accumulator = StreamAccumulator(
                    self._stream_progress(attempt, variant_index, candidate.id)
                )
                raw = await accumulator.consume(response.chunks, usage=response.usage)
            else:
                raw = accumulate_text(response.text or "", usage=response.usage)
            return raw, decode_plan(raw)

        def _on_retry(failed_attempt: int, error: PlannerError, delay: float) -> None:
            self._emit(
                ProgressStatus.PROCESSING,
                f"{error.user_message} Retrying in {delay:.1f}s.",
                attempt=failed_attempt + 1,
                variant_index=variant_index,
                candidate_id=candidate.id,
            )

        try:
            outcome = await with_retry(
                _attempt,
                self.retry_policy,
                on_retry=_on_retry,
                sleep=self._sleep,
                rng=self._rng,
                reached_remote=lambda: calling,
            )
        except asyncio.CancelledError:
            error = Cancelled()
            error.attempts = attempt
            self.lifecycle.record_failed(candidate.id, error, attempts=max(attempt, 1))
            self._emit(
                ProgressStatus.FAILED,
                error.user_message,
                attempt=attempt or None,
                variant_index=variant_index,
                candidate_id=candidate.id,
            )
            logger.info("Generation for candidate %s cancelled", candidate.id)
            raise

        if outcome.error is not None:
            failed = self.lifecycle.record_failed(
                candidate.id,
                outcome.error,
                attempts=outcome.attempts,
                history=outcome.history,
                possibly_duplicated=outcome.possibly_duplicated,
            )
            result = GenerationResult(
                candidate=failed,
                error=outcome.error,
                attempts=outcome.attempts,
                possibly_duplicated=outcome.possibly_duplicated,
            )
            self._emit(
                ProgressStatus.FAILED,
                result.user_message or "",
                attempt=outcome.attempts,
                variant_index=variant_index,
                candidate_id=candidate.id,
            )
            logger.error(
                "Generation failed for candidate %s after %d attempts: %s",
                candidate.id,
                outcome.attempts,
                outcome.error,
            )
            return result

        raw, plan = outcome.value  # type: ignore[misc]
        self._emit(
            ProgressStatus.VALIDATING,
            "Validating generated plan...",
            attempt=outcome.attempts,
            variant_index=variant_index,
            candidate_id=candidate.id,
        )
        validation = validate_plan(
            plan, request.land_area, request.amenity_percent, self.config.validation
        )
        if raw.usage.total_tokens:
            call_cost = self.client.usage_cost(raw.usage)
        else:
            call_cost = self.client.estimate_cost(request)
        cost.total_tokens += raw.usage.total_tokens
        cost.estimated_cost_usd += call_cost

        completed = self.lifecycle.record_generated(
            candidate.id,
            plan,
            validation,
            usage=raw.usage,
            attempts=outcome.attempts,
            history=outcome.history,
            possibly_duplicated=outcome.possibly_duplicated,
            generation_time_ms=raw.duration_ms,
            estimated_cost_usd=call_cost,
        )
        self._emit(
            ProgressStatus.COMPLETED,
            f"Generated {len(plan.units)} units ({validation.status.value})",
            attempt=outcome.attempts,
            variant_index=variant_index,
            candidate_id=candidate.id,
        )
        return GenerationResult(
            candidate=completed,
            validation=validation,
            attempts=outcome.attempts,
            possibly_duplicated=outcome.possibly_duplicated,
        )

    async def generate_batch(
        self,
        project_id: str,
        request: GenerationRequest,
        count: int,
        *,
        fan_out: int | None = None,
        aspect_ratios: Sequence[float] | None = None,
        road_layouts: Sequence[RoadLayout | str] | None = None,
        target_counts: Sequence[int | None] | None = None,
        strategies: Sequence[str] | None = None,
        price_per_area: float | None = None,
    ) -> BatchResult:
        """Generate ``count`` variants with at most ``fan_out`` calls in flight.

        Every call still passes through the shared rate limiter. Results are
        keyed by variant index regardless of completion order.
        """

        variants = build_variations(
            request,
            count,
            aspect_ratios=aspect_ratios,
            road_layouts=road_layouts,
            target_counts=target_counts,
            strategies=strategies,
        )
        limit = fan_out if fan_out is not None else self.config.fan_out
        if limit < 1:
            raise ValueError("fan_out must be at least 1.")
        semaphore = asyncio.Semaphore(limit)
        logger.info(
            "Generating %d variants for project %s (fan-out %d)", count, project_id, limit
        )

        async def _run(variant: VariantParams) -> GenerationResult:
            async with semaphore:
                return await self.generate(
                    project_id,
                    variant_request(request, variant),
                    strategy=variant.strategy,
                    variant_index=variant.index,
                )

        results = list(await asyncio.gather(*(_run(variant) for variant in variants)))
        completed = [result.candidate for result in results if result.ok]
        rankings = (
            rank_candidates(
                completed,
                request.land_area,
                price_per_area,
                weights=self.config.ranking,
                min_unit_area=self.config.validation.min_unit_area,
            )
            if completed
            else []
        )
        logger.info(
            "Batch for project %s finished: %d/%d succeeded",
            project_id,
            len(completed),
            len(results),
        )
        return BatchResult(results=results, rankings=rankings, variants=variants)

    # ------------------------------------------------------------------ #
    # Review and queries
    # ------------------------------------------------------------------ #

    def rank_project(
        self,
        project_id: str,
        price_per_area: float | None = None,
    ) -> list[Ranking]:
        """Rank the project's current completed, non-rejected candidates."""

        candidates = [
            candidate
            for candidate in self.lifecycle.history(project_id)
            if candidate.generation_status is GenerationStatus.COMPLETED
        ]
        if not candidates:
            return []
        area = candidates[0].request.land_area
        return rank_candidates(
            candidates,
            area,
            price_per_area,
            weights=self.config.ranking,
            min_unit_area=self.config.validation.min_unit_area,
        )

    async def approve(self, candidate_id: str) -> Candidate:
        return await self.lifecycle.approve(candidate_id)

    async def reject(self, candidate_id: str, reason: str | None = None) -> Candidate:
        return await self.lifecycle.reject(candidate_id, reason)

    async def activate(self, candidate_id: str) -> Candidate:
        return await self.lifecycle.activate(candidate_id)

    def estimate_cost(self, request: GenerationRequest) -> float:
        return self.client.estimate_cost(request)

    def session_cost(self, project_id: str) -> SessionCost:
        return self._session(project_id)

    def rate_limit_status(self) -> dict[str, float]:
        return self.rate_limiter.status(self.config.service_name)

    def _session(self, project_id: str) -> SessionCost:
        cost = self._costs.get(project_id)
        if cost is None:
            cost = SessionCost()
            self._costs[project_id] = cost
        return cost

    def _emit(self, status: ProgressStatus, message: str, **details: object) -> None:
        self.progress.emit(ProgressEvent(status=status, message=message, **details))  # type: ignore[arg-type]

    def _stream_progress(
        self,
        attempt: int,
        variant_index: int | None,
        candidate_id: str,
    ) -> Callable[[str, str], None]:
        seen = 0

        def _callback(chunk: str, accumulated: str) -> None:
            nonlocal seen
            seen += 1
            if seen % _PROGRESS_EVERY_CHUNKS:
                return
            self._emit(
                ProgressStatus.PROCESSING,
                f"Receiving plan... ({len(accumulated)} characters)",
                attempt=attempt,
                variant_index=variant_index,
                candidate_id=candidate_id,
                accumulated_length=len(accumulated),
            )

        return _callback


__all__ = ["BatchResult", "GenerationResult", "SessionCost", "SubdivisionPlanner"]
