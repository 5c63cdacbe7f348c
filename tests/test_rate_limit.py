"""Tests for per-session sliding-window admission and the session sweeper."""

import pytest

from conftest import ManualClock


def test_admits_up_to_max_then_denies():
    """The (max+1)-th request inside one window is denied."""
    from packages.shared.rate_limit import RateLimiter

    clock = ManualClock()
    limiter = RateLimiter(window_ms=60_000, max_requests=3, clock=clock)
    results = [limiter.admit("s1").allowed for _ in range(4)]
    assert results == [True, True, True, False]


def test_window_bound_holds_at_every_instant():
    """No window of length window_ms ever contains more than max admissions."""
    from packages.shared.rate_limit import RateLimiter

    clock = ManualClock()
    limiter = RateLimiter(window_ms=1_000, max_requests=5, clock=clock)
    admitted = []
    for _ in range(200):
        if limiter.admit("s1").allowed:
            admitted.append(clock())
        clock.advance(37)
    for t in admitted:
        in_window = [a for a in admitted if t - 1_000 < a <= t]
        assert len(in_window) <= 5


def test_admission_reopens_after_window():
    from packages.shared.rate_limit import RateLimiter

    clock = ManualClock()
    limiter = RateLimiter(window_ms=60_000, max_requests=2, clock=clock)
    assert limiter.admit("s1").allowed
    assert limiter.admit("s1").allowed
    denied = limiter.admit("s1")
    assert not denied.allowed
    assert denied.retry_after_ms == 60_000
    clock.advance(60_000)
    assert limiter.admit("s1").allowed


def test_denials_do_not_extend_lockout():
    """Hammering while denied does not push the reopening time back."""
    from packages.shared.rate_limit import RateLimiter

    clock = ManualClock()
    limiter = RateLimiter(window_ms=10_000, max_requests=1, clock=clock)
    assert limiter.admit("s1").allowed
    for _ in range(5):
        clock.advance(1_000)
        assert not limiter.admit("s1").allowed
    clock.advance(5_000)
    assert limiter.admit("s1").allowed


def test_sessions_are_independent():
    from packages.shared.rate_limit import RateLimiter

    limiter = RateLimiter(window_ms=60_000, max_requests=1, clock=ManualClock())
    assert limiter.admit("a").allowed
    assert not limiter.admit("a").allowed
    assert limiter.admit("b").allowed


def test_cleanup_drops_idle_sessions_and_is_idempotent():
    from packages.shared.rate_limit import RateLimiter

    clock = ManualClock()
    limiter = RateLimiter(window_ms=1_000, max_requests=5, clock=clock)
    limiter.admit("old")
    clock.advance(2_000)
    limiter.admit("fresh")
    assert limiter.cleanup() == 1
    assert len(limiter) == 1
    assert limiter.cleanup() == 0
    assert len(limiter) == 1


def test_rejects_non_positive_limits():
    from packages.shared.rate_limit import RateLimiter

    with pytest.raises(ValueError):
        RateLimiter(window_ms=0, max_requests=1)


def test_session_clock_sweeps_registered_state():
    """A failing sweeper is logged and does not stop the others."""
    from packages.shared.rate_limit import RateLimiter
    from packages.shared.session_clock import SessionClock

    clock = ManualClock()
    session_clock = SessionClock(clock=clock)
    limiter = RateLimiter(window_ms=1_000, max_requests=5, clock=session_clock.now)
    limiter.admit("s1")
    clock.advance(5_000)

    def broken() -> int:
        raise RuntimeError("boom")

    session_clock.register("broken", broken)
    session_clock.register("rate_limiter", limiter.cleanup)
    assert session_clock.sweep() == {"broken": 0, "rate_limiter": 1}
    assert len(limiter) == 0


@pytest.mark.asyncio
async def test_session_clock_start_stop():
    from packages.shared.session_clock import SessionClock

    session_clock = SessionClock(interval_sec=3600)
    session_clock.start()
    assert session_clock.running
    await session_clock.stop()
    assert not session_clock.running
