"""Helpers shared by the API handlers."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Response, current_app, jsonify, request

F = TypeVar("F", bound=Callable[..., Any])


def json_response(payload: Any, *, status: int = 200) -> Response:
    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Log the handler's wall time as ``elapsed_ms`` with its ``endpoint``."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        started = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            current_app.logger.debug(
                "request.elapsed",
                extra={
                    "endpoint": request.endpoint,
                    "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )

    return wrapper  # type: ignore[return-value]
