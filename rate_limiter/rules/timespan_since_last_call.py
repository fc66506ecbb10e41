"""Minimum-elapsed-time rate limiting rule.

A request is admitted only when at least ``min_interval`` has passed since the
same client's previous request. Every call is recorded, admitted or not, so a
client that keeps retrying has to back off for a full interval after its most
recent attempt.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Callable

from rate_limiter.core.errors import ClockAppError
from rate_limiter.rules.base import AbstractRateLimitingRule
from rate_limiter.rules.timestamp_store import TimestampStore

logger = logging.getLogger(__name__)


class TimespanSinceLastCallRule(AbstractRateLimitingRule):
    """Rule enforcing a minimum spacing between calls of the same client.

    Important:
        State is per-process and per-instance. Two rule instances never share
        their timestamps, and multiple API workers each enforce their own
        spacing.
    """

    def __init__(
        self,
        min_interval: timedelta | float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the rule.

        Args:
            min_interval: Minimum time between two calls of a client, as a
                timedelta or a number of seconds.
            clock: Time source returning seconds. Monotonic by default so
                system clock adjustments cannot produce negative intervals.

        Raises:
            ValueError: If min_interval is negative.
        """
        if isinstance(min_interval, timedelta):
            min_interval = min_interval.total_seconds()
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")

        self._min_interval = float(min_interval)
        self._clock = clock
        self._store = TimestampStore()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"TimespanSinceLastCallRule(min_interval={self._min_interval}, "
            f"tracked_clients={len(self._store)})"
        )

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval

    def _now(self) -> float:
        try:
            return self._clock()
        except Exception as exc:
            logger.error(
                "rate_limit.clock_failed",
                extra={"error_type": type(exc).__name__},
            )
            raise ClockAppError(
                code="clock_unavailable",
                message="Unable to read the rate limiter clock",
                details={"error_type": type(exc).__name__},
            ) from exc

    def is_request_allowed(self, client_id: str) -> bool:
        """Admit the request if enough time passed since the client's last call.

        The current time is recorded for the client regardless of the outcome.

        Args:
            client_id: Client identifier.

        Returns:
            True if the elapsed time since the previous call is at least the
            configured interval, or if the client was never seen.

        Raises:
            ClockAppError: If the clock cannot be read. Nothing is recorded.
        """
        previous, now = self._store.record(client_id, self._now)
        if previous is None:
            return True

        return now - previous >= self._min_interval

    def tracked_clients(self) -> int:
        """Return how many client identifiers currently hold a timestamp."""

        return len(self._store)

    def evict_idle(self, max_idle_seconds: float) -> int:
        """Drop clients that have not called for at least ``max_idle_seconds``.

        A dropped client is treated as never seen on its next call, so values
        below ``min_interval_seconds`` would let it skip part of its wait.

        Args:
            max_idle_seconds: Idle age after which an entry is removed.

        Returns:
            Number of removed entries.

        Raises:
            ValueError: If max_idle_seconds is lower than the rule interval or
                not positive.
        """
        if max_idle_seconds < self._min_interval:
            raise ValueError("max_idle_seconds must be >= min_interval")

        return self._store.evict_idle(now=self._now(), max_idle_seconds=max_idle_seconds)
