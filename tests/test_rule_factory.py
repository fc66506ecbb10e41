"""Tests for building rules from configuration."""

import time

import pytest

from rate_limiter.core.config import RateLimitSettings
from rate_limiter.core.errors import ValidationAppError
from rate_limiter.rules.factory import create_rate_limiting_rule, resolve_clock
from rate_limiter.rules.timespan_since_last_call import TimespanSinceLastCallRule


def test_resolve_known_clocks() -> None:
    assert resolve_clock("monotonic") is time.monotonic
    assert resolve_clock("wall") is time.time


def test_resolve_unknown_clock_raises() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        resolve_clock("sundial")

    assert exc_info.value.code == "unsupported_clock"
    assert "monotonic" in exc_info.value.details["hint"]


def test_creates_rule_from_settings() -> None:
    rule = create_rate_limiting_rule(RateLimitSettings(min_interval_seconds=2, clock="wall"))

    assert isinstance(rule, TimespanSinceLastCallRule)
    assert rule.min_interval_seconds == 2.0
    assert rule.is_request_allowed("a") is True
    assert rule.is_request_allowed("a") is False


def test_each_call_creates_an_independent_rule() -> None:
    cfg = RateLimitSettings(min_interval_seconds=60)
    first = create_rate_limiting_rule(cfg)
    second = create_rate_limiting_rule(cfg)

    assert first.is_request_allowed("a") is True
    assert second.is_request_allowed("a") is True


def test_clock_names_are_case_sensitive() -> None:
    with pytest.raises(ValidationAppError):
        resolve_clock("WALL")
