"""Error taxonomy for the subdivision planning pipeline.

Generation failures carry a stable ``error_type`` string plus a ``retryable``
hint consumed by :func:`subdivision_planner.generation.retry.classify_error`.
Validation problems are never raised; they travel as
:class:`subdivision_planner.models.ValidationResult`.
"""

from __future__ import annotations

from typing import Sequence


USER_MESSAGES: dict[str, str] = {
    "rate_limited": "Too many AI requests. Please wait a moment and try again.",
    "quota_exhausted": "The daily AI request quota is used up. Please try again tomorrow.",
    "transient_call_failure": "AI service temporarily unavailable. Retrying automatically...",
    "fatal_call_failure": "The AI service rejected the request. Check your API key and input parameters.",
    "attempt_timeout": "The AI request timed out. The service may be slow.",
    "truncated_response": "The AI response was cut off before it finished. Please try again.",
    "malformed_response": "The AI returned a plan that could not be read. Please try again.",
    "cancelled": "Plan generation was cancelled.",
    "retries_exhausted": "Plan generation failed after several attempts.",
    "cannot_approve": "This plan has validation errors and cannot be approved.",
    "invalid_transition": "That action is not allowed for the plan in its current state.",
    "candidate_not_found": "The requested plan does not exist.",
    "rejection_reason_too_long": "The rejection reason is too long.",
    "unknown": "An unexpected error occurred. Please try again.",
}


class PlannerError(RuntimeError):
    """Base class for every error raised by the planning core."""

    error_type = "unknown"

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.attempts: int = 0

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.error_type, USER_MESSAGES["unknown"])


# --------------------------------------------------------------------------- #
# Generation call failures                                                    #
# --------------------------------------------------------------------------- #


class GenerationError(PlannerError):
    """Failure of a single call against a generation service.

    ``side_effect`` marks failures that happened after the remote service
    accepted (and possibly billed) the request.
    """

    error_type = "generation_error"

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        status_code: int | None = None,
        side_effect: bool = False,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.status_code = status_code
        self.side_effect = side_effect


class RateLimitExceeded(GenerationError):
    """Raised when a named service has no slot available.

    ``retry_after`` is the number of seconds until a slot frees up. When
    ``quota_exhausted`` is set the daily quota is spent and local retries are
    pointless.
    """

    def __init__(
        self,
        service: str,
        *,
        retry_after: float | None = None,
        quota_exhausted: bool = False,
    ) -> None:
        if quota_exhausted:
            message = f"Daily quota exhausted for service '{service}'"
        else:
            wait = 0.0 if retry_after is None else retry_after
            message = f"Rate limit exceeded for service '{service}'; retry in {wait:.1f}s"
        super().__init__(message, retryable=not quota_exhausted, status_code=429)
        self.service = service
        self.retry_after = retry_after
        self.quota_exhausted = quota_exhausted

    @property
    def error_type(self) -> str:  # type: ignore[override]
        return "quota_exhausted" if self.quota_exhausted else "rate_limited"


class TransientCallFailure(GenerationError):
    """Network hiccup, 408/429 or 5xx from the remote service."""

    error_type = "transient_call_failure"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        side_effect: bool = False,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, retryable=True, status_code=status_code, side_effect=side_effect)
        self.retry_after = retry_after


class AttemptTimeout(TransientCallFailure):
    """A single attempt exceeded its time budget."""

    error_type = "attempt_timeout"

    def __init__(self, timeout_seconds: float, *, side_effect: bool = True) -> None:
        super().__init__(
            f"Attempt exceeded {timeout_seconds:.1f}s timeout",
            side_effect=side_effect,
        )
        self.timeout_seconds = timeout_seconds


class FatalCallFailure(GenerationError):
    """Bad credentials, malformed request or any other non-retryable 4xx."""

    error_type = "fatal_call_failure"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, retryable=False, status_code=status_code)


class _ResponseShapeError(GenerationError):
    """Shared diagnostics for responses that could not be decoded."""

    def __init__(self, message: str, *, length: int, prefix: str, suffix: str) -> None:
        super().__init__(
            f"{message} (length={length}, starts={prefix!r}, ends={suffix!r})",
            retryable=True,
            side_effect=True,
        )
        self.length = length
        self.prefix = prefix
        self.suffix = suffix


class TruncatedResponse(_ResponseShapeError):
    """The accumulated payload ended before the document was closed."""

    error_type = "truncated_response"


class MalformedResponse(_ResponseShapeError):
    """The payload looked complete but did not decode into a plan."""

    error_type = "malformed_response"


class Cancelled(GenerationError):
    """The caller cancelled an in-flight generation."""

    error_type = "cancelled"

    def __init__(self, message: str = "Generation cancelled by caller") -> None:
        super().__init__(message, retryable=False, side_effect=True)


class RetryExhausted(PlannerError):
    """Wraps the last error once the retry policy gives up."""

    error_type = "retries_exhausted"

    def __init__(self, last_error: PlannerError, attempts: int) -> None:
        super().__init__(f"{last_error} (after {attempts} attempts)", retryable=False)
        self.last_error = last_error
        self.attempts = attempts

    @property
    def user_message(self) -> str:
        return f"{self.last_error.user_message} (failed after {self.attempts} attempts)"


# --------------------------------------------------------------------------- #
# Lifecycle failures                                                          #
# --------------------------------------------------------------------------- #


class LifecycleError(PlannerError):
    """Base class for illegal candidate state changes."""

    def __init__(self, message: str, *, candidate_id: str) -> None:
        super().__init__(message, retryable=False)
        self.candidate_id = candidate_id


class CannotApprove(LifecycleError):
    """Approval blocked by validation errors."""

    error_type = "cannot_approve"

    def __init__(self, candidate_id: str, blocking_errors: Sequence[str]) -> None:
        self.blocking_errors = tuple(blocking_errors)
        details = "; ".join(self.blocking_errors) or "plan is not valid"
        super().__init__(
            f"Candidate {candidate_id} cannot be approved: {details}",
            candidate_id=candidate_id,
        )

    @property
    def user_message(self) -> str:
        if not self.blocking_errors:
            return USER_MESSAGES["cannot_approve"]
        return "Cannot approve plan: " + "; ".join(self.blocking_errors)


class InvalidTransition(LifecycleError):
    error_type = "invalid_transition"

    def __init__(self, candidate_id: str, state: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} candidate {candidate_id} while it is {state}",
            candidate_id=candidate_id,
        )
        self.state = state
        self.action = action


class CandidateNotFound(LifecycleError):
    error_type = "candidate_not_found"

    def __init__(self, candidate_id: str) -> None:
        super().__init__(f"Unknown candidate {candidate_id}", candidate_id=candidate_id)


class RejectionReasonTooLong(LifecycleError):
    error_type = "rejection_reason_too_long"

    def __init__(self, candidate_id: str, length: int, limit: int) -> None:
        super().__init__(
            f"Rejection reason for {candidate_id} is {length} characters (limit {limit})",
            candidate_id=candidate_id,
        )
        self.length = length
        self.limit = limit


__all__ = [
    "AttemptTimeout",
    "CandidateNotFound",
    "Cancelled",
    "CannotApprove",
    "FatalCallFailure",
    "GenerationError",
    "InvalidTransition",
    "LifecycleError",
    "MalformedResponse",
    "PlannerError",
    "RateLimitExceeded",
    "RejectionReasonTooLong",
    "RetryExhausted",
    "TransientCallFailure",
    "TruncatedResponse",
    "USER_MESSAGES",
]
