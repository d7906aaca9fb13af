"""
Problem Details (RFC 7807) error responses.

Every error leaving the API is rendered as ``application/problem+json`` with
a stable ``code`` and the request's correlation id. Registration failures
reach this module already translated by
``RegistrationSaga.translate_exceptions``.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, jsonify, request
from marshmallow import ValidationError as MarshmallowValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from identity_service.core.logger import ensure_request_id

log = logging.getLogger(__name__)

# Stable codes for statuses raised by Werkzeug rather than by our own errors.
_STATUS_CODES = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    415: "unsupported_media_type",
    422: "validation_error",
    500: "internal_server_error",
    502: "bad_gateway",
    503: "service_unavailable",
}


def problem(
    status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build a Problem Details body for the current request.

    :param status: HTTP status code.
    :param code: Machine-readable error code.
    :param message: Client-safe description.
    :param details: Optional structured details (validation rule, saga step...).
    :returns: Problem Details mapping including ``request_id``.
    :rtype: dict
    """
    body: dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path,
        "code": code,
    }
    if details:
        body["details"] = details
    body["request_id"] = ensure_request_id()
    return body


def _respond(body: dict[str, Any], *, exc_info: bool = False) -> tuple[Response, int]:
    status = body["status"]
    level = logging.ERROR if status >= 500 else logging.WARNING
    log.log(
        level,
        "%s status=%s detail=%s request_id=%s",
        body["code"],
        status,
        body["detail"],
        body["request_id"],
        exc_info=exc_info,
    )
    resp = jsonify(body)
    resp.mimetype = "application/problem+json"
    return resp, status


class APIError(Exception):
    """
    Error raised by API handlers and rendered as Problem Details.

    :param message: Client-safe description.
    :param status_code: HTTP status, ``400`` by default.
    :param code: Machine-readable code, ``"bad_request"`` by default.
    :param details: Optional structured details.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "bad_request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}

    def to_problem(self) -> dict[str, Any]:
        return problem(self.status_code, self.code, self.message, self.details or None)


class NotFound(APIError):
    """404: the referenced user or profile does not exist."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=HTTPStatus.NOT_FOUND, code="not_found")


class Conflict(APIError):
    """409: the registration collides with an existing identity."""

    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message, status_code=HTTPStatus.CONFLICT, code="conflict", details=details
        )


class UnprocessableEntity(APIError):
    """422: well-formed input rejected by a registration rule."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            code="validation_error",
            details=details,
        )


class BadGateway(APIError):
    """502: the identity provider failed or timed out."""

    def __init__(self, message: str = "Upstream failure", details: dict[str, Any] | None = None):
        super().__init__(
            message, status_code=HTTPStatus.BAD_GATEWAY, code="bad_gateway", details=details
        )


def init_app(app: Flask) -> None:
    """Register the Problem Details handlers on ``app``."""

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        return _respond(err.to_problem())

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        code = _STATUS_CODES.get(status, "error")
        if status == HTTPStatus.NOT_FOUND:
            message = f"Route '{request.path}' not found"
        else:
            message = (err.description or code.replace("_", " ").capitalize()).strip()
        return _respond(problem(status, code, message))

    @app.errorhandler(MarshmallowValidationError)
    def handle_validation_error(err: MarshmallowValidationError):
        return _respond(
            problem(
                HTTPStatus.UNPROCESSABLE_ENTITY,
                "validation_error",
                "Validation failed",
                {"errors": err.normalized_messages()},
            )
        )

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        # Raw constraint text stays in the logs.
        return _respond(
            problem(HTTPStatus.CONFLICT, "conflict", "Resource conflict"), exc_info=True
        )

    @app.errorhandler(OperationalError)
    def handle_operational_error(err: OperationalError):
        return _respond(
            problem(
                HTTPStatus.SERVICE_UNAVAILABLE,
                "service_unavailable",
                "Service temporarily unavailable",
            ),
            exc_info=True,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        return _respond(
            problem(HTTPStatus.INTERNAL_SERVER_ERROR, "internal_server_error", "Unexpected error"),
            exc_info=True,
        )
