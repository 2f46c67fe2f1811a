from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from src.config import DEFAULT_QUOTA_LIMIT, DEFAULT_QUOTA_PERIOD_SECONDS, EngineSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QuotaUsage:
    requests_in_period: int
    remaining: int
    reset_at: float | None

    def to_dict(self) -> dict[str, float | int | None]:
        return {
            "requests_in_period": self.requests_in_period,
            "remaining": self.remaining,
            "reset_at": self.reset_at,
        }


class QuotaGuard:
    """Fixed-window request counter for the external ranking service.

    The window opens on the first acquisition after a reset and closes
    `period_seconds` later. `try_acquire` checks and increments under one lock,
    so concurrent callers can never exceed `limit` within a window.
    """

    def __init__(
        self,
        limit: int = DEFAULT_QUOTA_LIMIT,
        period_seconds: float = DEFAULT_QUOTA_PERIOD_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if limit < 0:
            raise ValueError("Quota limit must be non-negative.")
        if period_seconds <= 0:
            raise ValueError("Quota period must be positive.")
        self.limit = int(limit)
        self.period_seconds = float(period_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._count = 0
        self._window_start: float | None = None

    def _roll_window(self, now: float) -> None:
        if self._window_start is not None and now >= self._window_start + self.period_seconds:
            self._window_start = None
            self._count = 0

    def try_acquire(self) -> bool:
        with self._lock:
            now = self._clock()
            self._roll_window(now)
            if self._count >= self.limit:
                logger.warning(
                    "Ranking quota exhausted (%d/%d); window resets at %.0f.",
                    self._count,
                    self.limit,
                    (self._window_start or now) + self.period_seconds,
                )
                return False
            if self._window_start is None:
                self._window_start = now
            self._count += 1
            return True

    def usage(self) -> QuotaUsage:
        with self._lock:
            self._roll_window(self._clock())
            reset_at = None if self._window_start is None else self._window_start + self.period_seconds
            return QuotaUsage(
                requests_in_period=self._count,
                remaining=max(0, self.limit - self._count),
                reset_at=reset_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._count = 0
            self._window_start = None


_guard_lock = threading.Lock()
_guard: QuotaGuard | None = None


def init_quota_guard(settings: EngineSettings | None = None) -> QuotaGuard:
    """Install the process-wide guard, replacing any existing one."""
    global _guard
    if settings is None:
        guard = QuotaGuard()
    else:
        guard = QuotaGuard(settings.quota_limit, settings.quota_period_seconds)
    with _guard_lock:
        _guard = guard
    logger.info("Ranking quota guard set to %d requests per %.0fs.", guard.limit, guard.period_seconds)
    return guard


def get_quota_guard() -> QuotaGuard:
    """Return the process-wide guard, creating one with defaults on first use."""
    global _guard
    with _guard_lock:
        if _guard is None:
            _guard = QuotaGuard()
        return _guard


def reset_quota_guard() -> None:
    """Drop the process-wide guard; the next `get_quota_guard` starts fresh."""
    global _guard
    with _guard_lock:
        _guard = None
