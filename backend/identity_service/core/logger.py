"""
JSON logging for the identity service.

Each record becomes one JSON object on stdout carrying the request
correlation id and, when the caller passed them through ``extra``, the
registration fields below (saga step, external id, topic...).
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from flask import Flask, g, has_request_context, request

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_HEADERS = (REQUEST_ID_HEADER, "X-Correlation-ID")

# ``extra`` attributes copied to top-level JSON keys.
EXTRA_KEYS = (
    "saga_step",
    "external_id",
    "profile_type",
    "topic",
    "endpoint",
    "elapsed_ms",
)

# Chatty third-party loggers capped at WARNING.
_QUIET_LOGGERS = ("urllib3", "werkzeug")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.now(UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update({key: getattr(record, key) for key in EXTRA_KEYS if hasattr(record, key)})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class RequestIdFilter(logging.Filter):
    """Stamp ``request_id`` on every record (``None`` outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = ensure_request_id() if has_request_context() else None
        return True


def ensure_request_id() -> str:
    """
    Return the correlation id of the current request.

    Reuses ``X-Request-ID`` or ``X-Correlation-ID`` when the client sent one,
    otherwise generates a UUID4 and caches it on ``flask.g``. Outside a
    request a fresh UUID4 is returned.
    """
    if not has_request_context():
        return str(uuid4())
    cached = getattr(g, "request_id", None)
    if cached:
        return cached
    request_id = next(
        (request.headers[h] for h in CORRELATION_HEADERS if request.headers.get(h)),
        str(uuid4()),
    )
    g.request_id = request_id
    return request_id


def configure_logging(level: str | int = "INFO") -> None:
    """Replace the root handlers with a single JSON handler on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def init_app(app: Flask) -> None:
    """Seed the request id before each request and echo it on the response."""
    app.logger.addFilter(RequestIdFilter())

    @app.before_request
    def _seed_request_id() -> None:
        ensure_request_id()

    @app.after_request
    def _inject_request_id(response):
        response.headers.setdefault(REQUEST_ID_HEADER, ensure_request_id())
        return response


__all__ = ["JSONFormatter", "configure_logging", "ensure_request_id", "init_app"]
