"""Unit tests for the in-memory rate limiter adapter."""

import threading
from unittest.mock import Mock

import pytest

from apiguard.adapters.rate_limit.base import RateLimitConfig, format_reset_time
from apiguard.adapters.rate_limit.in_memory import InMemoryRateLimiter
from apiguard.core.errors import ConfigurationAppError


@pytest.fixture
def limiter(clock: Mock):
    limiter = InMemoryRateLimiter(clock=clock, start_cleanup=False)
    yield limiter
    limiter.destroy()


def test_allows_exactly_max_requests_per_window(limiter: InMemoryRateLimiter) -> None:
    config = RateLimitConfig(window_ms=60_000, max_requests=3)

    results = [limiter.check("k", config) for _ in range(5)]

    assert [r.success for r in results] == [True, True, True, False, False]
    for result in results:
        assert result.limit == 3
        assert result.remaining == max(0, 3 - result.used)
    assert [r.remaining for r in results[:3]] == [2, 1, 0]


def test_first_request_opens_window(limiter: InMemoryRateLimiter) -> None:
    config = RateLimitConfig(window_ms=60_000, max_requests=5)

    result = limiter.check("k", config)

    assert result.success is True
    assert result.used == 1
    assert result.remaining == 4
    assert result.reset_time == 1_000_000 + 60_000


def test_rejected_requests_do_not_inflate_counter(limiter: InMemoryRateLimiter) -> None:
    config = RateLimitConfig(window_ms=60_000, max_requests=2)
    limiter.check("k", config)
    limiter.check("k", config)

    first_rejection = limiter.check("k", config)
    later = [limiter.check("k", config) for _ in range(10)]

    assert first_rejection.success is False
    assert first_rejection.used == 2
    assert all(r.used == 2 and r.remaining == 0 for r in later)


def test_resets_after_window(limiter: InMemoryRateLimiter, clock: Mock) -> None:
    config = RateLimitConfig(window_ms=10_000, max_requests=1)

    first = limiter.check("k", config)
    assert limiter.check("k", config).success is False

    clock.return_value = 1010.0
    result = limiter.check("k", config)

    assert result.success is True
    assert result.used == 1
    assert result.remaining == 0
    assert result.reset_time == 1_010_000 + 10_000
    assert result.reset_time > first.reset_time


def test_reset_time_is_stable_within_window(limiter: InMemoryRateLimiter, clock: Mock) -> None:
    config = RateLimitConfig(window_ms=60_000, max_requests=5)

    first = limiter.check("k", config)
    clock.return_value = 1030.0
    second = limiter.check("k", config)

    assert second.reset_time == first.reset_time
    assert second.used == 2


def test_isolated_by_key(limiter: InMemoryRateLimiter) -> None:
    config = RateLimitConfig(window_ms=60_000, max_requests=1)

    assert limiter.check("auth:1.2.3.4", config).success is True
    assert limiter.check("auth:1.2.3.4", config).success is False

    other = limiter.check("billing:1.2.3.4", config)
    assert other.success is True
    assert other.used == 1


def test_separate_instances_do_not_share_state(clock: Mock) -> None:
    config = RateLimitConfig(window_ms=60_000, max_requests=1)
    first = InMemoryRateLimiter(clock=clock, start_cleanup=False)
    second = InMemoryRateLimiter(clock=clock, start_cleanup=False)

    assert first.check("k", config).success is True
    assert first.check("k", config).success is False
    assert second.check("k", config).success is True


def test_cleanup_removes_only_expired_entries(limiter: InMemoryRateLimiter, clock: Mock) -> None:
    short = RateLimitConfig(window_ms=1_000, max_requests=1)
    long = RateLimitConfig(window_ms=60_000, max_requests=1)
    limiter.check("short", short)
    limiter.check("long", long)
    assert limiter.check("short", short).success is False

    clock.return_value = 1002.0
    removed = limiter.cleanup()

    assert removed == 1
    assert "short" not in limiter
    assert "long" in limiter
    assert len(limiter) == 1

    result = limiter.check("short", short)
    assert result.success is True
    assert result.used == 1


def test_destroy_clears_entries_and_stops_sweeper(clock: Mock) -> None:
    limiter = InMemoryRateLimiter(cleanup_interval_seconds=60, clock=clock)
    thread = limiter._cleanup_thread
    assert thread is not None and thread.is_alive()

    limiter.check("k", RateLimitConfig(window_ms=60_000, max_requests=1))
    limiter.destroy()

    assert len(limiter) == 0
    assert not thread.is_alive()
    limiter.destroy()  # idempotent


def test_background_sweeper_reclaims_expired_keys(clock: Mock) -> None:
    swept = threading.Event()
    limiter = InMemoryRateLimiter(cleanup_interval_seconds=0.01, clock=clock, start_cleanup=False)
    original_cleanup = limiter.cleanup

    def tracking_cleanup() -> int:
        removed = original_cleanup()
        if removed:
            swept.set()
        return removed

    limiter.cleanup = tracking_cleanup  # type: ignore[method-assign]
    limiter.check("k", RateLimitConfig(window_ms=1_000, max_requests=1))
    clock.return_value = 1005.0

    limiter._cleanup_thread = threading.Thread(target=limiter._run_cleanup_loop, daemon=True)
    limiter._cleanup_thread.start()
    try:
        assert swept.wait(timeout=2)
        assert "k" not in limiter
    finally:
        limiter.destroy()


def test_counts_are_exact_under_concurrent_threads(clock: Mock) -> None:
    limiter = InMemoryRateLimiter(clock=clock, start_cleanup=False)
    config = RateLimitConfig(window_ms=60_000, max_requests=50)
    allowed: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(20):
            result = limiter.check("shared", config)
            with lock:
                allowed.append(result.success)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert allowed.count(True) == 50
    assert allowed.count(False) == 8 * 20 - 50


@pytest.mark.parametrize(
    "kwargs",
    [
        {"window_ms": 0, "max_requests": 5},
        {"window_ms": -1, "max_requests": 5},
        {"window_ms": 1000, "max_requests": 0},
        {"window_ms": 1000, "max_requests": -3},
    ],
)
def test_invalid_config_is_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationAppError) as exc_info:
        RateLimitConfig(**kwargs)
    assert exc_info.value.code == "invalid_rate_limit_config"


def test_invalid_cleanup_interval_is_rejected() -> None:
    with pytest.raises(ValueError):
        InMemoryRateLimiter(cleanup_interval_seconds=0)


def test_empty_key_is_rejected(limiter: InMemoryRateLimiter) -> None:
    with pytest.raises(ValueError):
        limiter.check("", RateLimitConfig(window_ms=1000, max_requests=1))


def test_result_headers(limiter: InMemoryRateLimiter) -> None:
    result = limiter.check("k", RateLimitConfig(window_ms=60_000, max_requests=5))

    assert result.headers == {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": "1970-01-01T00:17:40.000Z",
    }


def test_format_reset_time_keeps_milliseconds() -> None:
    assert format_reset_time(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"
