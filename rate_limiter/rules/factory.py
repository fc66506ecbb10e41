"""Rule construction from configuration."""

from __future__ import annotations

import logging
import time
from typing import Callable

from rate_limiter.core.config import RateLimitSettings
from rate_limiter.core.errors import ValidationAppError
from rate_limiter.rules.base import AbstractRateLimitingRule
from rate_limiter.rules.timespan_since_last_call import TimespanSinceLastCallRule

logger = logging.getLogger(__name__)

CLOCKS: dict[str, Callable[[], float]] = {
    "monotonic": time.monotonic,
    "wall": time.time,
}


def resolve_clock(name: str) -> Callable[[], float]:
    """Map a configured clock name to its time function.

    Raises:
        ValidationAppError: If the name is unknown.
    """
    try:
        return CLOCKS[name]
    except KeyError:
        raise ValidationAppError(
            code="unsupported_clock",
            message=f"Unsupported clock: {name}",
            details={"hint": f"Use one of: {', '.join(sorted(CLOCKS))}"},
        ) from None


def create_rate_limiting_rule(rate_limit_settings: RateLimitSettings) -> AbstractRateLimitingRule:
    """Create the rule configured for the HTTP boundary.

    Args:
        rate_limit_settings: Resolved rate limit settings.

    Returns:
        A fresh rule with an empty timestamp store.
    """
    clock = resolve_clock(rate_limit_settings.clock)
    rule = TimespanSinceLastCallRule(
        rate_limit_settings.min_interval_seconds,
        clock=clock,
    )

    logger.info(
        "rate_limit.rule_created",
        extra={
            "rule": type(rule).__name__,
            "min_interval_s": rate_limit_settings.min_interval_seconds,
            "clock": rate_limit_settings.clock,
            "idle_eviction_s": rate_limit_settings.idle_eviction_seconds,
        },
    )
    return rule
