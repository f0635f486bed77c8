"""Fire-and-forget progress events for UI consumers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class ProgressStatus(str, Enum):
    STARTED = "started"
    PROCESSING = "processing"
    VALIDATING = "validating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    status: ProgressStatus
    message: str
    attempt: int | None = None
    variant_index: int | None = None
    candidate_id: str | None = None
    accumulated_length: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {key: value for key, value in asdict(self).items() if value is not None}
        payload["status"] = self.status.value
        return payload


class ProgressSink(Protocol):
    def emit(self, event: ProgressEvent) -> None: ...


class NullProgressSink:
    def emit(self, event: ProgressEvent) -> None:
        return None


class CallbackProgressSink:
    """Forwards events to a plain callable. Callback failures are logged and dropped."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._callback = callback

    def emit(self, event: ProgressEvent) -> None:
        try:
            self._callback(event)
        except Exception:  # noqa: BLE001 - a broken listener must not fail generation
            logger.exception("Progress callback failed for %s event", event.status.value)


class QueueProgressSink:
    """Pushes events onto an ``asyncio.Queue`` for a single consumer."""

    def __init__(self, queue: asyncio.Queue[ProgressEvent] | None = None) -> None:
        self.queue: asyncio.Queue[ProgressEvent] = queue if queue is not None else asyncio.Queue()

    def emit(self, event: ProgressEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.debug("Progress queue full; dropping %s event", event.status.value)

    def drain(self) -> list[ProgressEvent]:
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


__all__ = [
    "CallbackProgressSink",
    "NullProgressSink",
    "ProgressEvent",
    "ProgressSink",
    "ProgressStatus",
    "QueueProgressSink",
]
