"""
Service-layer exceptions.

Framework-agnostic: the HTTP mapping lives in
``BaseService.translate_exceptions`` and its overrides.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint: str) -> bool:
    """
    Tell whether ``exc`` was raised by ``constraint``.

    PostgreSQL names the constraint (``uq_users_email``) while SQLite names
    the column (``users.email``); pass whichever form the backend reports.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return constraint.lower() in message


class ServiceError(Exception):
    """Root of every error raised deliberately by a service."""


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """A user or profile looked up by id does not exist."""

    entity: str
    key: str | int

    def __str__(self) -> str:
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """A write collided with an existing row."""

    entity: str
    detail: str

    def __str__(self) -> str:
        return f"Conflict on {self.entity}: {self.detail}"
