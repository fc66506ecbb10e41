"""Rate limiting rule interface.

Request-handling code should depend on this abstraction (not a concrete
policy) so further strategies (sliding window, token bucket, ...) can be
plugged in without touching the callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractRateLimitingRule(ABC):
    """Interface for rate limiting rules."""

    @abstractmethod
    def is_request_allowed(self, client_id: str) -> bool:
        """Decide whether a request from the given client is admitted.

        Concrete rules may update their internal state as part of the decision.

        Args:
            client_id: Opaque client identifier (e.g., API key, IP address).
                The format is not validated here.

        Returns:
            True if the request is admitted under this rule, False otherwise.
        """
        raise NotImplementedError
