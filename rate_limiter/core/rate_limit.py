"""Rate limiting dependency for FastAPI routes.

This module is the request-handling boundary around the rules package: it
derives a client identifier from the request, asks the configured rule for a
decision and turns a rejection into HTTP 429.

Client identification:
- X-API-Key header when present.
- Otherwise the client IP (or "unknown" when the transport gives none).
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Annotated

from fastapi import Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from rate_limiter.core.config import settings
from rate_limiter.core.logging import hash_for_log
from rate_limiter.rules.base import AbstractRateLimitingRule
from rate_limiter.rules.factory import create_rate_limiting_rule
from rate_limiter.rules.timespan_since_last_call import TimespanSinceLastCallRule

logger = logging.getLogger(__name__)


_rule: AbstractRateLimitingRule | None = None
_rule_config: tuple[float, str] | None = None
_rule_lock = threading.Lock()
_last_sweep_at: float | None = None


def get_rate_limiting_rule() -> AbstractRateLimitingRule:
    """Return the process-wide rule instance.

    The instance is cached in-module to preserve client state across requests.
    If configuration changes (primarily in tests), the rule is rebuilt with an
    empty store.

    Returns:
        AbstractRateLimitingRule: Configured rule instance.
    """

    global _rule, _rule_config, _last_sweep_at

    config = (
        settings.rate_limit.min_interval_seconds,
        settings.rate_limit.clock,
    )

    with _rule_lock:
        if _rule is None or _rule_config != config:
            _rule = create_rate_limiting_rule(settings.rate_limit)
            _rule_config = config
            _last_sweep_at = None
        return _rule


def reset_rate_limiting_rule() -> None:
    """Drop the cached rule so the next request starts from an empty store."""

    global _rule, _rule_config, _last_sweep_at

    with _rule_lock:
        _rule = None
        _rule_config = None
        _last_sweep_at = None


def _maybe_evict_idle(rule: AbstractRateLimitingRule) -> None:
    """Run the idle sweep when enabled, at most once per eviction interval."""

    global _last_sweep_at

    max_idle = settings.rate_limit.idle_eviction_seconds
    if max_idle is None or not isinstance(rule, TimespanSinceLastCallRule):
        return

    now = time.monotonic()
    with _rule_lock:
        if _last_sweep_at is not None and now - _last_sweep_at < max_idle:
            return
        _last_sweep_at = now

    removed = rule.evict_idle(max_idle)
    logger.info(
        "rate_limit.idle_sweep",
        extra={
            "removed": removed,
            "tracked_clients": rule.tracked_clients(),
            "max_idle_s": max_idle,
        },
    )


def build_client_id(request: Request, x_api_key: str | None) -> str:
    """Build the client identifier for the current request.

    Args:
        request: FastAPI request.
        x_api_key: API key value from the X-API-Key header.

    Returns:
        str: Namespaced client identifier.
    """

    if x_api_key:
        return f"api_key:{x_api_key}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


async def enforce_rate_limit(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency enforcing the configured rule.

    Every call counts as an attempt, so a rejected client has to wait a full
    interval after its latest request.

    Args:
        request: FastAPI request.
        x_api_key: API key from X-API-Key header.

    Raises:
        HTTPException: 429 Too Many Requests when the rule rejects the request.
        ClockAppError: If the rule's clock cannot be read.
    """

    if not settings.rate_limit.enabled:
        return

    rule = get_rate_limiting_rule()
    client_id = build_client_id(request, x_api_key)
    key_hash = hash_for_log(client_id)
    key_type = "api_key" if x_api_key else "ip"
    min_interval = settings.rate_limit.min_interval_seconds

    allowed = rule.is_request_allowed(client_id)
    if settings.rate_limit.idle_eviction_seconds is not None:
        # The sweep takes per-client locks; keep it off the event loop.
        await run_in_threadpool(_maybe_evict_idle, rule)

    if allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_type": key_type,
                "key_hash": key_hash,
                "min_interval_s": min_interval,
            },
        )
        return

    retry_after = int(math.ceil(min_interval))
    logger.warning(
        "rate_limit.rejected",
        extra={
            "key_type": key_type,
            "key_hash": key_hash,
            "min_interval_s": min_interval,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if settings.rate_limit.include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Min-Interval"] = f"{min_interval:g}"

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )
