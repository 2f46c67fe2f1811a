from __future__ import annotations

import threading

import pytest

from src.ai.quota import QuotaGuard, get_quota_guard, init_quota_guard, reset_quota_guard
from src.config import EngineSettings


class _Clock:
    def __init__(self, now: float = 5_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture(autouse=True)
def _fresh_process_guard():
    reset_quota_guard()
    yield
    reset_quota_guard()


def test_limit_plus_one_is_rejected_within_window() -> None:
    guard = QuotaGuard(limit=3, period_seconds=3600, clock=_Clock())

    results = [guard.try_acquire() for _ in range(4)]

    assert results == [True, True, True, False]
    usage = guard.usage()
    assert usage.requests_in_period == 3
    assert usage.remaining == 0


def test_window_starts_on_first_request_and_resets_after_period() -> None:
    clock = _Clock()
    guard = QuotaGuard(limit=1, period_seconds=60, clock=clock)

    assert guard.usage().reset_at is None
    assert guard.try_acquire() is True
    assert guard.usage().reset_at == 5_060.0

    clock.now += 59
    assert guard.try_acquire() is False
    clock.now += 1
    assert guard.try_acquire() is True
    assert guard.usage().reset_at == 5_120.0


def test_concurrent_acquires_never_exceed_limit() -> None:
    guard = QuotaGuard(limit=25, period_seconds=3600)
    granted: list[bool] = []
    lock = threading.Lock()
    start = threading.Barrier(8)

    def worker() -> None:
        start.wait()
        for _ in range(10):
            result = guard.try_acquire()
            with lock:
                granted.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(granted) == 25
    assert guard.usage().requests_in_period == 25


def test_process_guard_lifecycle() -> None:
    settings = EngineSettings(quota_limit=2, quota_period_seconds=120)

    installed = init_quota_guard(settings)
    assert get_quota_guard() is installed
    assert installed.limit == 2

    reset_quota_guard()
    fresh = get_quota_guard()
    assert fresh is not installed
    assert fresh.limit == 50
    assert fresh.period_seconds == 3600.0


def test_zero_limit_rejects_everything() -> None:
    guard = QuotaGuard(limit=0)

    assert guard.try_acquire() is False
    assert guard.usage().remaining == 0
