"""Bounded exponential-backoff retry returning a typed outcome."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from subdivision_planner.config import RetryConfig
from subdivision_planner.errors import (
    AttemptTimeout,
    Cancelled,
    GenerationError,
    PlannerError,
    RateLimitExceeded,
    RetryExhausted,
)
from subdivision_planner.models import AttemptRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorClass(str, Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"


def classify_error(error: BaseException) -> ErrorClass:
    """Default classifier: trust the ``retryable`` flag of planner errors."""

    if isinstance(error, Cancelled):
        return ErrorClass.FATAL
    if isinstance(error, RateLimitExceeded):
        return ErrorClass.FATAL if error.quota_exhausted else ErrorClass.RETRYABLE
    if isinstance(error, PlannerError):
        return ErrorClass.RETRYABLE if error.retryable else ErrorClass.FATAL
    return ErrorClass.FATAL


@dataclass(slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    # Fraction of the computed delay added or removed at random.
    jitter: float = 0.25
    attempt_timeout: float | None = None
    # When False, a retryable failure that may have reached the remote
    # service is returned instead of being retried.
    retry_on_side_effect: bool = True
    classifier: Callable[[BaseException], ErrorClass] = classify_error

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if self.base_delay < 0 or self.multiplier < 1:
            raise ValueError("base_delay must be >= 0 and multiplier >= 1.")

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            multiplier=config.multiplier,
            max_delay=config.max_delay,
            jitter=config.jitter,
            attempt_timeout=config.attempt_timeout,
            retry_on_side_effect=config.retry_on_side_effect,
        )

    def backoff(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay before the retry that follows failed ``attempt`` (1-based)."""

        delay = min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)
        if self.jitter > 0 and delay > 0:
            source = rng or random
            delay *= 1.0 + source.uniform(-self.jitter, self.jitter)
        return max(0.0, delay)


@dataclass(slots=True)
class RetryOutcome(Generic[T]):
    """Either a value or the terminal error, plus the full attempt history."""

    value: T | None = None
    error: PlannerError | None = None
    attempts: int = 0
    history: list[AttemptRecord] = field(default_factory=list)
    # Set when a retry followed a failure that may have already been billed.
    possibly_duplicated: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def root_error(self) -> PlannerError | None:
        if isinstance(self.error, RetryExhausted):
            return self.error.last_error
        return self.error

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    on_retry: Callable[[int, PlannerError, float], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: random.Random | None = None,
    reached_remote: Callable[[], bool] | None = None,
) -> RetryOutcome[T]:
    """Run ``operation`` until it succeeds, fails fatally or runs out of attempts.

    Errors are returned inside the outcome rather than raised. Cancellation of
    the surrounding task is never swallowed.

    ``reached_remote`` reports whether the timed-out attempt got as far as the
    external call. A timeout before that point (for example while waiting on
    the rate limiter) is not treated as possibly billed.
    """

    policy = policy or RetryPolicy()
    history: list[AttemptRecord] = []
    duplicated = False
    last_error: PlannerError | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            if policy.attempt_timeout is not None:
                try:
                    value = await asyncio.wait_for(operation(), timeout=policy.attempt_timeout)
                except asyncio.TimeoutError:
                    billed = reached_remote is None or reached_remote()
                    raise AttemptTimeout(policy.attempt_timeout, side_effect=billed) from None
            else:
                value = await operation()
            return RetryOutcome(
                value=value,
                attempts=attempt,
                history=history,
                possibly_duplicated=duplicated,
            )
        except Exception as exc:  # noqa: BLE001 - classified below
            error = _as_planner_error(exc)
            error.attempts = attempt
            last_error = error
            verdict = policy.classifier(error)
            side_effect = isinstance(error, GenerationError) and error.side_effect
            logger.warning(
                "Attempt %d/%d failed (%s): %s",
                attempt,
                policy.max_attempts,
                error.error_type,
                error,
            )
            if verdict is ErrorClass.FATAL:
                history.append(AttemptRecord(attempt, error.error_type, str(error)))
                return RetryOutcome(
                    error=error,
                    attempts=attempt,
                    history=history,
                    possibly_duplicated=duplicated,
                )
            if side_effect and not policy.retry_on_side_effect:
                history.append(AttemptRecord(attempt, error.error_type, str(error)))
                logger.warning(
                    "Not retrying %s: the previous attempt may already have been billed.",
                    error.error_type,
                )
                return RetryOutcome(
                    error=error,
                    attempts=attempt,
                    history=history,
                    possibly_duplicated=duplicated,
                )
            if attempt >= policy.max_attempts:
                history.append(AttemptRecord(attempt, error.error_type, str(error)))
                break
            delay = policy.backoff(attempt, rng)
            hint = getattr(error, "retry_after", None)
            if hint is not None:
                delay = max(delay, float(hint))
            history.append(AttemptRecord(attempt, error.error_type, str(error), delay))
            if side_effect:
                duplicated = True
            if on_retry is not None:
                on_retry(attempt, error, delay)
            await sleep(delay)

    assert last_error is not None
    exhausted = RetryExhausted(last_error, policy.max_attempts)
    exhausted.__cause__ = last_error
    return RetryOutcome(
        error=exhausted,
        attempts=policy.max_attempts,
        history=history,
        possibly_duplicated=duplicated,
    )


def _as_planner_error(exc: Exception) -> PlannerError:
    if isinstance(exc, PlannerError):
        return exc
    wrapped = PlannerError(f"{exc.__class__.__name__}: {exc}")
    wrapped.__cause__ = exc
    return wrapped


__all__ = ["ErrorClass", "RetryOutcome", "RetryPolicy", "classify_error", "with_retry"]
