from __future__ import annotations

import time

import pytest

from leaguefeed.services.config import RateLimitConfig
from leaguefeed.services.errors import RateLimitExceeded
from leaguefeed.services.rate_limit import RateLimiter, RateLimitWindow


class FakeClock:
    def __init__(self, start: float = 500.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_back_to_back_calls_are_spaced_by_the_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(
        {"fixtures": RateLimitConfig(max_requests=1, window_ms=1000)},
        clock=clock,
        sleep=clock.sleep,
    )

    first = limiter.acquire("fixtures")
    second = limiter.acquire("fixtures")

    assert second - first >= 1.0
    assert clock.sleeps == [pytest.approx(1.0)]


def test_back_to_back_calls_wait_in_wall_clock_time() -> None:
    limiter = RateLimiter({"fixtures": RateLimitConfig(max_requests=1, window_ms=200)})

    started = time.monotonic()
    first = limiter.acquire("fixtures")
    second = limiter.acquire("fixtures")

    assert second - first >= 0.2 - 1e-9
    assert time.monotonic() - started >= 0.2 - 1e-9


def test_window_allows_burst_up_to_max_requests() -> None:
    clock = FakeClock()
    limiter = RateLimiter(
        {"fixtures": RateLimitConfig(max_requests=3, window_ms=1000)},
        clock=clock,
        sleep=clock.sleep,
    )

    for _ in range(3):
        limiter.acquire("fixtures")
    assert clock.sleeps == []

    limiter.acquire("fixtures")
    assert clock.sleeps == [pytest.approx(1.0)]


def test_saturated_class_does_not_block_other_classes() -> None:
    clock = FakeClock()

    def no_sleep(seconds: float) -> None:
        raise AssertionError(f"unexpected wait of {seconds}s")

    limiter = RateLimiter(
        {
            "fixtures": RateLimitConfig(max_requests=1, window_ms=1000),
            "table": RateLimitConfig(max_requests=1, window_ms=1000),
        },
        clock=clock,
        sleep=no_sleep,
    )

    limiter.acquire("fixtures")
    limiter.acquire("table")

    with pytest.raises(RateLimitExceeded):
        limiter.window("fixtures").reserve()


def test_old_timestamps_are_pruned() -> None:
    clock = FakeClock()
    window = RateLimitWindow("table", max_requests=2, window_ms=1000, clock=clock)

    window.reserve()
    window.reserve()
    with pytest.raises(RateLimitExceeded) as excinfo:
        window.reserve()
    assert excinfo.value.retry_after == pytest.approx(1.0)

    clock.now += 1.0
    assert window.recent_requests() == []
    window.reserve()


def test_unknown_resource_class_uses_default_window() -> None:
    limiter = RateLimiter({"fixtures": RateLimitConfig(max_requests=1, window_ms=1000)})
    assert limiter.window("players").resource_class == "default"


def test_window_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        RateLimitWindow("fixtures", max_requests=0, window_ms=1000)
