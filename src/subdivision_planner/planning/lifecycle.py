"""Candidate state machine.

``pending -> completed -> approved | rejected``, with ``failed`` as the other
exit from ``pending``. Completed candidates may additionally be active (at most
one per project) or archived. Rejected and failed are terminal; archived
candidates can be restored, which makes them active again.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Sequence

from subdivision_planner.errors import (
    CannotApprove,
    InvalidTransition,
    PlannerError,
    RejectionReasonTooLong,
    RetryExhausted,
)
from subdivision_planner.models import (
    AttemptRecord,
    Candidate,
    GeneratedPlan,
    GenerationRequest,
    GenerationStatus,
    TokenUsage,
    ValidationResult,
    ValidationStatus,
    utc_now,
)
from subdivision_planner.planning.store import CandidateStore, InMemoryCandidateStore

logger = logging.getLogger(__name__)


def _new_candidate_id() -> str:
    return uuid.uuid4().hex


class PlanLifecycleManager:
    """Sole writer of candidate status, approval and activation fields.

    Every mutation works on a copy loaded from the store and is saved only
    once all guards have passed, so a refused transition leaves the stored
    candidate untouched.
    """

    def __init__(
        self,
        store: CandidateStore | None = None,
        *,
        max_rejection_reason: int = 500,
        id_factory: Callable[[], str] = _new_candidate_id,
    ) -> None:
        self.store = store if store is not None else InMemoryCandidateStore()
        self.max_rejection_reason = max_rejection_reason
        self._id_factory = id_factory
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock

    # ------------------------------------------------------------------ #
    # Generation outcomes. Synchronous so they can run from cancellation
    # handlers without awaiting.
    # ------------------------------------------------------------------ #

    def record_pending(
        self,
        project_id: str,
        request: GenerationRequest,
        *,
        variant_index: int | None = None,
        strategy: str | None = None,
        model: str | None = None,
    ) -> Candidate:
        candidate = Candidate(
            id=self._id_factory(),
            project_id=project_id,
            request=request,
            variant_index=variant_index,
            strategy=strategy,
            model=model,
        )
        self.store.save(candidate)
        logger.debug("Created pending candidate %s for project %s", candidate.id, project_id)
        return candidate

    def record_generated(
        self,
        candidate_id: str,
        plan: GeneratedPlan,
        validation: ValidationResult,
        *,
        usage: TokenUsage | None = None,
        attempts: int = 1,
        history: Sequence[AttemptRecord] = (),
        possibly_duplicated: bool = False,
        generation_time_ms: float | None = None,
        estimated_cost_usd: float | None = None,
    ) -> Candidate:
        candidate = self._load_pending(candidate_id, "complete")
        candidate.generation_status = GenerationStatus.COMPLETED
        candidate.completed_at = utc_now()
        candidate.plan = plan
        candidate.validation_status = validation.status
        candidate.validation_errors = list(validation.errors)
        candidate.validation_warnings = list(validation.warnings)
        candidate.usage = usage or TokenUsage()
        candidate.retry_count = max(attempts - 1, 0)
        candidate.attempt_history = list(history)
        candidate.possibly_duplicated = possibly_duplicated
        candidate.generation_time_ms = generation_time_ms
        candidate.estimated_cost_usd = estimated_cost_usd
        self.store.save(candidate)
        logger.info(
            "Candidate %s completed: %d units, validation=%s",
            candidate.id,
            len(plan.units),
            validation.status.value,
        )
        return candidate

    def record_failed(
        self,
        candidate_id: str,
        error: PlannerError,
        *,
        attempts: int = 1,
        history: Sequence[AttemptRecord] = (),
        possibly_duplicated: bool = False,
    ) -> Candidate:
        candidate = self._load_pending(candidate_id, "fail")
        root = error.last_error if isinstance(error, RetryExhausted) else error
        candidate.generation_status = GenerationStatus.FAILED
        candidate.completed_at = utc_now()
        candidate.error_type = root.error_type
        candidate.error_message = str(error)
        candidate.retry_count = max(attempts - 1, 0)
        candidate.attempt_history = list(history)
        candidate.possibly_duplicated = possibly_duplicated
        self.store.save(candidate)
        logger.info("Candidate %s failed (%s)", candidate.id, root.error_type)
        return candidate

    def _load_pending(self, candidate_id: str, action: str) -> Candidate:
        candidate = self.store.load_by_id(candidate_id)
        if candidate.generation_status is not GenerationStatus.PENDING:
            raise InvalidTransition(candidate_id, candidate.state, action)
        return candidate

    # ------------------------------------------------------------------ #
    # Review transitions
    # ------------------------------------------------------------------ #

    @staticmethod
    def can_approve(candidate: Candidate) -> bool:
        return (
            candidate.generation_status is GenerationStatus.COMPLETED
            and candidate.validation_status is not ValidationStatus.INVALID
        )

    async def approve(self, candidate_id: str) -> Candidate:
        candidate = self.store.load_by_id(candidate_id)
        async with self._lock(candidate.project_id):
            candidate = self.store.load_by_id(candidate_id)
            if candidate.approved:
                return candidate
            self._check_approvable(candidate)
            candidate.approved = True
            candidate.approved_at = utc_now()
            self.store.save(candidate)
        logger.info("Candidate %s approved", candidate_id)
        return candidate

    async def reject(self, candidate_id: str, reason: str | None = None) -> Candidate:
        if reason is not None and len(reason) > self.max_rejection_reason:
            raise RejectionReasonTooLong(candidate_id, len(reason), self.max_rejection_reason)
        candidate = self.store.load_by_id(candidate_id)
        async with self._lock(candidate.project_id):
            candidate = self.store.load_by_id(candidate_id)
            if (
                candidate.generation_status is not GenerationStatus.COMPLETED
                or candidate.approved
                or candidate.is_active
            ):
                raise InvalidTransition(candidate_id, candidate.state, "reject")
            candidate.generation_status = GenerationStatus.REJECTED
            candidate.rejection_reason = reason
            self.store.save(candidate)
        logger.info("Candidate %s rejected", candidate_id)
        return candidate

    async def activate(self, candidate_id: str) -> Candidate:
        """Make the candidate its project's active plan, approving it if needed.

        The previously active candidate and every other completed, non-rejected
        candidate of the project are archived.
        """

        candidate = self.store.load_by_id(candidate_id)
        project_id = candidate.project_id
        async with self._lock(project_id):
            candidate = self.store.load_by_id(candidate_id)
            if candidate.is_active:
                return candidate
            self._check_approvable(candidate)

            now = utc_now()
            superseded = [
                other
                for other in self.store.list_by_project(project_id)
                if other.id != candidate_id
                and other.generation_status is GenerationStatus.COMPLETED
                and (other.is_active or not other.is_archived)
            ]
            for other in superseded:
                other.is_active = False
                other.is_archived = True
                other.archived_at = now
                self.store.save(other)

            if not candidate.approved:
                candidate.approved = True
                candidate.approved_at = now
            candidate.is_active = True
            candidate.is_archived = False
            candidate.archived_at = None
            self.store.save(candidate)
            self.store.set_active(project_id, candidate_id)
        logger.info(
            "Candidate %s is now active for project %s (%d archived)",
            candidate_id,
            project_id,
            len(superseded),
        )
        return candidate

    async def archive(self, candidate_id: str) -> Candidate:
        candidate = self.store.load_by_id(candidate_id)
        async with self._lock(candidate.project_id):
            candidate = self.store.load_by_id(candidate_id)
            if candidate.generation_status is not GenerationStatus.COMPLETED:
                raise InvalidTransition(candidate_id, candidate.state, "archive")
            if candidate.is_archived:
                return candidate
            if candidate.is_active:
                candidate.is_active = False
                self.store.set_active(candidate.project_id, None)
            candidate.is_archived = True
            candidate.archived_at = utc_now()
            self.store.save(candidate)
        logger.info("Candidate %s archived", candidate_id)
        return candidate

    async def restore(self, candidate_id: str) -> Candidate:
        """Bring an archived candidate back as the active plan."""

        candidate = self.store.load_by_id(candidate_id)
        if candidate.generation_status is not GenerationStatus.COMPLETED or not candidate.is_archived:
            raise InvalidTransition(candidate_id, candidate.state, "restore")
        return await self.activate(candidate_id)

    def _check_approvable(self, candidate: Candidate) -> None:
        if candidate.generation_status is not GenerationStatus.COMPLETED:
            raise InvalidTransition(candidate.id, candidate.state, "approve")
        if candidate.validation_status is ValidationStatus.INVALID:
            raise CannotApprove(candidate.id, candidate.validation_errors)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get(self, candidate_id: str) -> Candidate:
        return self.store.load_by_id(candidate_id)

    def history(self, project_id: str, *, include_rejected: bool = False) -> list[Candidate]:
        """All candidates of a project in creation order, newest last."""

        return [
            candidate
            for candidate in self.store.list_by_project(project_id)
            if include_rejected or candidate.generation_status is not GenerationStatus.REJECTED
        ]

    def archived(self, project_id: str) -> list[Candidate]:
        return [
            candidate
            for candidate in self.store.list_by_project(project_id)
            if candidate.is_archived and candidate.generation_status is GenerationStatus.COMPLETED
        ]

    def active(self, project_id: str) -> Candidate | None:
        candidate_id = self.store.get_active(project_id)
        if candidate_id is None:
            return None
        return self.store.load_by_id(candidate_id)


__all__ = ["PlanLifecycleManager"]
