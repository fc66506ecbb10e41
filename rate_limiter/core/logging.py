"""Structured logging for the rate limiter service.

Every record leaving a configured handler is a single JSON object (or a plain
line in local development) carrying the current request id. Extra fields are
scrubbed first: client identifiers and credentials are replaced with
``[REDACTED]``; log ``hash_for_log(...)`` values instead when a stable
reference to a client is needed.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

from rate_limiter.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

SENSITIVE_KEYS_DEFAULT = frozenset(
    {
        "api_key",
        "x-api-key",
        "authorization",
        "cookie",
        "set-cookie",
        "password",
        "secret",
        "token",
        "client_id",
        "client_host",
    }
)

# Attributes every LogRecord has; anything else on a record came from `extra`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return _request_id.get()


@contextmanager
def request_id_scope(request_id: str | None) -> Iterator[None]:
    """Bind a request id to the current context for the duration of the block."""

    token = _request_id.set(request_id)
    try:
        yield
    finally:
        _request_id.reset(token)


def hash_for_log(value: str) -> str:
    """Short SHA-256 digest (16 hex chars) of a value that must not be logged raw."""

    return hashlib.sha256(value.encode()).hexdigest()[:16]


def redact(value: Any, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> Any:
    """Return ``value`` with sensitive mapping keys masked at any depth."""

    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item, sensitive_keys) for item in value)
    return value


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Fields passed through ``extra=`` when the record was created."""

    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class RedactingFilter(logging.Filter):
    """Scrub sensitive extras in place and stamp the context request id."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in redact(extra_fields(record), self.sensitive_keys).items():
            setattr(record, key, value)

        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: level, logger, event message and extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update((k, v) for k, v in extra_fields(record).items() if v is not None)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _open_handler(cfg: LogSettings) -> logging.Handler:
    if cfg.output == "stdout":
        return logging.StreamHandler(sys.stdout)

    path = Path(cfg.file_path or "logs/app.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if cfg.max_bytes == 0:
        return logging.FileHandler(path, encoding="utf-8")
    return RotatingFileHandler(
        path, maxBytes=cfg.max_bytes, backupCount=cfg.backup_count, encoding="utf-8"
    )


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single redacting handler on the root logger.

    Args:
        log_settings: Optional log settings; defaults to ``settings.log``.
    """

    cfg = log_settings or settings.log

    handler = _open_handler(cfg)
    handler.addFilter(RedactingFilter())
    handler.setFormatter(
        JsonFormatter()
        if cfg.format == "json"
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(cfg.level.upper(), logging.INFO))

    # uvicorn installs its own handlers; keep its records from reaching root twice
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).propagate = False
