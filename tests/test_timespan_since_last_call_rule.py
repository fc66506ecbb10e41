"""Unit tests for the minimum-elapsed-time rule."""

import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from rate_limiter.core.errors import ClockAppError
from rate_limiter.rules import AbstractRateLimitingRule, TimespanSinceLastCallRule


def test_is_a_rate_limiting_rule() -> None:
    rule = TimespanSinceLastCallRule(1.0)

    assert isinstance(rule, AbstractRateLimitingRule)


def test_first_call_for_unknown_client_is_allowed(clock) -> None:
    rule = TimespanSinceLastCallRule(3600.0, clock=clock)

    assert rule.is_request_allowed("a") is True
    assert rule.is_request_allowed("b") is True


def test_blocks_call_before_interval_elapsed(clock) -> None:
    rule = TimespanSinceLastCallRule(1.0, clock=clock)

    assert rule.is_request_allowed("a") is True
    clock.advance(0.5)
    assert rule.is_request_allowed("a") is False


def test_allows_call_once_interval_elapsed(clock) -> None:
    rule = TimespanSinceLastCallRule(1.0, clock=clock)

    assert rule.is_request_allowed("a") is True
    clock.advance(1.0)
    assert rule.is_request_allowed("a") is True
    clock.advance(5.0)
    assert rule.is_request_allowed("a") is True


def test_rejected_call_resets_reference_time() -> None:
    clock = Mock(return_value=0.0)
    rule = TimespanSinceLastCallRule(1.0, clock=clock)

    assert rule.is_request_allowed("A") is True

    clock.return_value = 0.5
    assert rule.is_request_allowed("A") is False

    # 1.4 - 0.5 < 1.0 even though 1.4 - 0.0 >= 1.0
    clock.return_value = 1.4
    assert rule.is_request_allowed("A") is False

    clock.return_value = 1.6
    assert rule.is_request_allowed("A") is False

    clock.return_value = 2.6
    assert rule.is_request_allowed("A") is True


def test_clients_are_isolated(clock) -> None:
    rule = TimespanSinceLastCallRule(10.0, clock=clock)

    assert rule.is_request_allowed("k1") is True
    assert rule.is_request_allowed("k1") is False

    assert rule.is_request_allowed("k2") is True
    clock.advance(1.0)
    assert rule.is_request_allowed("k2") is False


def test_zero_interval_allows_every_call(clock) -> None:
    rule = TimespanSinceLastCallRule(0, clock=clock)

    for _ in range(5):
        assert rule.is_request_allowed("a") is True


def test_accepts_timedelta_interval(clock) -> None:
    rule = TimespanSinceLastCallRule(timedelta(milliseconds=1500), clock=clock)

    assert rule.min_interval_seconds == 1.5
    assert rule.is_request_allowed("a") is True
    clock.advance(1.0)
    assert rule.is_request_allowed("a") is False
    clock.advance(1.5)
    assert rule.is_request_allowed("a") is True


def test_clock_moving_backwards_rejects(clock) -> None:
    rule = TimespanSinceLastCallRule(1.0, clock=clock)

    assert rule.is_request_allowed("a") is True
    clock.advance(-30.0)
    assert rule.is_request_allowed("a") is False


def test_separate_rules_do_not_share_state(clock) -> None:
    strict = TimespanSinceLastCallRule(60.0, clock=clock)
    lenient = TimespanSinceLastCallRule(1.0, clock=clock)

    assert strict.is_request_allowed("a") is True
    clock.advance(2.0)
    assert lenient.is_request_allowed("a") is True
    assert strict.is_request_allowed("a") is False


@pytest.mark.parametrize("interval", [-1, -0.001, timedelta(seconds=-5)])
def test_negative_interval_is_rejected(interval) -> None:
    with pytest.raises(ValueError):
        TimespanSinceLastCallRule(interval)


def test_clock_failure_propagates_and_records_nothing(clock) -> None:
    broken = Mock(side_effect=OSError("clock unavailable"))
    rule = TimespanSinceLastCallRule(1.0, clock=broken)

    with pytest.raises(ClockAppError) as exc_info:
        rule.is_request_allowed("a")

    assert exc_info.value.code == "clock_unavailable"
    assert isinstance(exc_info.value.__cause__, OSError)
    assert rule.tracked_clients() == 0


def test_concurrent_calls_for_same_client_admit_at_most_one(clock) -> None:
    rule = TimespanSinceLastCallRule(1.0, clock=clock)
    workers = 32
    barrier = threading.Barrier(workers)
    results: list[bool] = []
    results_lock = threading.Lock()

    def _call() -> None:
        barrier.wait()
        allowed = rule.is_request_allowed("same-client")
        with results_lock:
            results.append(allowed)

    threads = [threading.Thread(target=_call) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == workers
    assert results.count(True) == 1


def test_slow_clock_read_cannot_overwrite_a_later_attempt() -> None:
    entered = threading.Event()
    release = threading.Event()
    readings = {"slow": 10.0, "fast": 10.9}
    current = {"value": 0.0}

    def _clock() -> float:
        name = threading.current_thread().name
        if name == "slow":
            entered.set()
            release.wait(timeout=5)
        return readings.get(name, current["value"])

    rule = TimespanSinceLastCallRule(1.0, clock=_clock)
    assert rule.is_request_allowed("a") is True

    results: dict[str, bool] = {}
    slow = threading.Thread(
        target=lambda: results.update(slow=rule.is_request_allowed("a")), name="slow"
    )
    fast = threading.Thread(
        target=lambda: results.update(fast=rule.is_request_allowed("a")), name="fast"
    )

    slow.start()
    assert entered.wait(timeout=5)
    fast.start()
    # The fast call has to queue behind the slow one for the same client
    fast.join(timeout=0.5)
    release.set()
    slow.join(timeout=5)
    fast.join(timeout=5)

    assert results == {"slow": True, "fast": False}

    # Measured from the latest attempt (10.9), not the stale one (10.0)
    current["value"] = 11.0
    assert rule.is_request_allowed("a") is False


def test_concurrent_calls_for_distinct_clients_are_all_admitted(clock) -> None:
    rule = TimespanSinceLastCallRule(1.0, clock=clock)
    workers = 32
    barrier = threading.Barrier(workers)
    results: dict[str, bool] = {}

    def _call(idx: int) -> None:
        barrier.wait()
        results[f"client-{idx}"] = rule.is_request_allowed(f"client-{idx}")

    threads = [threading.Thread(target=_call, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == workers
    assert all(results.values())
    assert rule.tracked_clients() == workers


def test_evict_idle_forgets_only_idle_clients(clock) -> None:
    rule = TimespanSinceLastCallRule(1.0, clock=clock)

    rule.is_request_allowed("idle")
    clock.advance(30.0)
    rule.is_request_allowed("active")
    clock.advance(0.5)

    assert rule.evict_idle(10.0) == 1
    assert rule.tracked_clients() == 1

    # Still within its interval, so the surviving entry keeps rejecting
    assert rule.is_request_allowed("active") is False
    # The evicted client starts over as a new client
    assert rule.is_request_allowed("idle") is True


def test_evict_idle_below_interval_is_rejected() -> None:
    rule = TimespanSinceLastCallRule(5.0)

    with pytest.raises(ValueError):
        rule.evict_idle(1.0)
