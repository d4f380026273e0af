from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from discord_gateway.errors import RateLimitExceeded
from discord_gateway.ratelimit import (
    RateLimitPolicy,
    SlidingWindowRateLimiter,
    identity_for,
)


class FakeTimer:
    def __init__(self, start: float = 0.0) -> None:
        self._current = start

    def advance(self, seconds: float) -> None:
        self._current += seconds

    def __call__(self) -> float:
        return self._current


def test_sixth_request_in_window_is_denied_with_retry_after() -> None:
    timer = FakeTimer()
    limiter = SlidingWindowRateLimiter(window=timedelta(seconds=60), max_requests=5, timer=timer)

    for expected_remaining in (4, 3, 2, 1, 0):
        decision = limiter.admit("10.0.0.1")
        assert decision.allowed is True
        assert decision.remaining == expected_remaining

    timer.advance(1)
    denied = limiter.admit("10.0.0.1")

    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.retry_after == 59


def test_requests_are_admitted_again_after_window_elapses() -> None:
    timer = FakeTimer()
    limiter = SlidingWindowRateLimiter(window=timedelta(seconds=60), max_requests=5, timer=timer)

    for _ in range(5):
        limiter.admit("10.0.0.1")

    timer.advance(61)

    assert limiter.admit("10.0.0.1").allowed is True


def test_denied_attempts_do_not_extend_the_window() -> None:
    timer = FakeTimer()
    limiter = SlidingWindowRateLimiter(window=timedelta(seconds=10), max_requests=1, timer=timer)

    assert limiter.admit("a").allowed is True
    for _ in range(5):
        timer.advance(1)
        assert limiter.admit("a").allowed is False

    timer.advance(5)
    assert limiter.admit("a").allowed is True


def test_identities_are_counted_independently() -> None:
    timer = FakeTimer()
    limiter = SlidingWindowRateLimiter(window=timedelta(seconds=60), max_requests=1, timer=timer)

    assert limiter.admit("a").allowed is True
    assert limiter.admit("b").allowed is True
    assert limiter.admit("a").allowed is False


def test_concurrent_admissions_never_exceed_the_limit() -> None:
    limiter = SlidingWindowRateLimiter(window=timedelta(minutes=5), max_requests=25)

    with ThreadPoolExecutor(max_workers=16) as pool:
        decisions = list(pool.map(lambda _: limiter.admit("shared"), range(200)))

    assert sum(decision.allowed for decision in decisions) == 25
    assert limiter.remaining("shared") == 0


def test_reset_and_sweep_release_identities() -> None:
    timer = FakeTimer()
    limiter = SlidingWindowRateLimiter(window=timedelta(seconds=10), max_requests=1, timer=timer)

    limiter.admit("a")
    limiter.admit("b")
    limiter.reset("a")
    assert limiter.admit("a").allowed is True

    timer.advance(10)
    assert limiter.sweep() == 2
    assert len(limiter) == 0


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(window=timedelta(0), max_requests=1)
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(window=timedelta(seconds=1), max_requests=0)


def test_policy_applies_endpoint_limit_on_top_of_global_pool() -> None:
    timer = FakeTimer()
    policy = RateLimitPolicy(
        window=timedelta(minutes=1),
        max_requests=100,
        endpoint_limits={"/api/server/setup": (timedelta(hours=1), 1)},
        timer=timer,
    )

    first = policy.check("10.0.0.1", "/api/server/setup")
    assert first.remaining == 0
    assert first.limit == 1

    with pytest.raises(RateLimitExceeded) as err:
        policy.check("10.0.0.1", "/api/server/setup")

    assert err.value.scope == "endpoint"
    assert err.value.retry_after == 3600
    assert policy.check("10.0.0.1", "/api/status").allowed is True


def test_policy_global_limit_applies_across_paths() -> None:
    timer = FakeTimer()
    policy = RateLimitPolicy(window=timedelta(minutes=1), max_requests=2, endpoint_limits={}, timer=timer)

    policy.check("10.0.0.1", "/a")
    policy.check("10.0.0.1", "/b")

    with pytest.raises(RateLimitExceeded) as err:
        policy.check("10.0.0.1", "/c")

    assert err.value.scope == "global"
    assert err.value.limit == 2


def test_identity_for_joins_parts() -> None:
    assert identity_for("1.2.3.4") == "1.2.3.4"
    assert identity_for("1.2.3.4", user_agent="curl", endpoint="/health") == "1.2.3.4|curl|/health"
    assert identity_for("", user_agent="") == "unknown|unknown"
