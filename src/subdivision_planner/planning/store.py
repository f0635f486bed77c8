"""Candidate persistence boundary."""

from __future__ import annotations

import copy
import logging
from typing import Protocol

from subdivision_planner.errors import CandidateNotFound
from subdivision_planner.models import Candidate

logger = logging.getLogger(__name__)


class CandidateStore(Protocol):
    """Row store used by the lifecycle manager.

    Timestamps are ISO-8601 strings and flags are real booleans; stores must
    not coerce either.
    """

    def save(self, candidate: Candidate) -> None: ...

    def load_by_id(self, candidate_id: str) -> Candidate: ...

    def list_by_project(self, project_id: str) -> list[Candidate]: ...

    def set_active(self, project_id: str, candidate_id: str | None) -> None: ...

    def get_active(self, project_id: str) -> str | None: ...


class InMemoryCandidateStore:
    """Dictionary-backed store. Hands out copies so callers cannot bypass saves."""

    def __init__(self) -> None:
        self._rows: dict[str, Candidate] = {}
        self._order: dict[str, list[str]] = {}
        self._active: dict[str, str] = {}

    def save(self, candidate: Candidate) -> None:
        if candidate.id not in self._rows:
            self._order.setdefault(candidate.project_id, []).append(candidate.id)
        self._rows[candidate.id] = copy.deepcopy(candidate)

    def load_by_id(self, candidate_id: str) -> Candidate:
        try:
            return copy.deepcopy(self._rows[candidate_id])
        except KeyError:
            raise CandidateNotFound(candidate_id) from None

    def list_by_project(self, project_id: str) -> list[Candidate]:
        return [copy.deepcopy(self._rows[item]) for item in self._order.get(project_id, [])]

    def set_active(self, project_id: str, candidate_id: str | None) -> None:
        if candidate_id is None:
            self._active.pop(project_id, None)
        else:
            self._active[project_id] = candidate_id
        logger.debug("Active candidate for %s -> %s", project_id, candidate_id)

    def get_active(self, project_id: str) -> str | None:
        return self._active.get(project_id)

    def __len__(self) -> int:
        return len(self._rows)


__all__ = ["CandidateStore", "InMemoryCandidateStore"]
