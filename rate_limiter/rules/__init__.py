"""Rate limiting rules.

Callers depend on ``AbstractRateLimitingRule``; ``TimespanSinceLastCallRule``
is the concrete policy, backed by an in-memory ``TimestampStore``.
"""

from rate_limiter.rules.base import AbstractRateLimitingRule
from rate_limiter.rules.timespan_since_last_call import TimespanSinceLastCallRule
from rate_limiter.rules.timestamp_store import TimestampStore

__all__ = ["AbstractRateLimitingRule", "TimespanSinceLastCallRule", "TimestampStore"]
