"""Sliding-window rate limiting for outbound generation calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Mapping

from subdivision_planner.config import RateLimitConfig
from subdivision_planner.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RateLimitToken:
    """Proof that a call was admitted under a service budget."""

    service: str
    acquired_at: float
    sequence: int
    waited_seconds: float = 0.0


@dataclass(slots=True)
class _ServiceWindow:
    config: RateLimitConfig
    calls: deque[float] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    day: date | None = None
    day_count: int = 0
    issued: int = 0


class RateLimiter:
    """Per-service request budget over a rolling time window.

    Every admitted call records its timestamp; a new call is admitted only
    while fewer than ``max_requests`` timestamps fall inside the last
    ``window_seconds``. An optional ``daily_quota`` caps admissions per UTC day.
    """

    def __init__(
        self,
        limits: Mapping[str, RateLimitConfig],
        *,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        for service, limit in limits.items():
            if limit.max_requests <= 0 or limit.window_seconds <= 0:
                raise ValueError(f"Rate limit for '{service}' must be positive.")
        self._windows = {service: _ServiceWindow(limit) for service, limit in limits.items()}
        self._clock = clock
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self._sleep = sleep

    @property
    def services(self) -> tuple[str, ...]:
        return tuple(self._windows)

    async def acquire(self, service: str, *, block: bool | None = None) -> RateLimitToken:
        """Take one slot for ``service``.

        Blocks until a slot frees up unless ``block`` (or the service config)
        says to fail fast, in which case :class:`RateLimitExceeded` carries the
        wait hint. An exhausted daily quota always fails fast.
        """

        window = self._window(service)
        should_block = window.config.block if block is None else block
        waited = 0.0
        while True:
            async with window.lock:
                now = self._clock()
                self._roll_day(window)
                if window.config.daily_quota is not None and (
                    window.day_count >= window.config.daily_quota
                ):
                    logger.warning("Daily quota exhausted for service %s", service)
                    raise RateLimitExceeded(
                        service,
                        retry_after=self._seconds_until_tomorrow(),
                        quota_exhausted=True,
                    )
                self._prune(window, now)
                if len(window.calls) < window.config.max_requests:
                    window.calls.append(now)
                    window.day_count += 1
                    window.issued += 1
                    return RateLimitToken(
                        service=service,
                        acquired_at=now,
                        sequence=window.issued,
                        waited_seconds=waited,
                    )
                wait = max(0.0, window.calls[0] + window.config.window_seconds - now)
            if not should_block:
                raise RateLimitExceeded(service, retry_after=wait)
            logger.info("Rate limit reached for %s; waiting %.2fs for a slot", service, wait)
            await self._sleep(wait)
            waited += wait

    def status(self, service: str) -> dict[str, float]:
        """Snapshot for UI display: free slots, capacity and wait time."""

        window = self._window(service)
        now = self._clock()
        self._prune(window, now)
        available = window.config.max_requests - len(window.calls)
        wait = 0.0
        if available <= 0 and window.calls:
            wait = max(0.0, window.calls[0] + window.config.window_seconds - now)
        return {
            "available": float(max(available, 0)),
            "capacity": float(window.config.max_requests),
            "wait_seconds": wait,
        }

    def reset(self, service: str | None = None) -> None:
        targets = self._windows.values() if service is None else [self._window(service)]
        for window in targets:
            window.calls.clear()
            window.day_count = 0

    def _window(self, service: str) -> _ServiceWindow:
        try:
            return self._windows[service]
        except KeyError:
            raise KeyError(f"No rate limit configured for service '{service}'.") from None

    @staticmethod
    def _prune(window: _ServiceWindow, now: float) -> None:
        horizon = now - window.config.window_seconds
        while window.calls and window.calls[0] <= horizon:
            window.calls.popleft()

    def _roll_day(self, window: _ServiceWindow) -> None:
        today = self._today()
        if window.day != today:
            window.day = today
            window.day_count = 0

    @staticmethod
    def _seconds_until_tomorrow() -> float:
        now = datetime.now(timezone.utc)
        tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), timezone.utc)
        return (tomorrow - now).total_seconds()


__all__ = ["RateLimitToken", "RateLimiter"]
