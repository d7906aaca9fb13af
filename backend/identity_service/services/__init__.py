"""Service layer public API.

Re-exports
----------
- Base primitives: :class:`BaseService` and the shared service errors.
- Registration: :class:`RegistrationSaga`, its DTOs and typed errors.
"""

from __future__ import annotations

from ._shared.base import BaseService
from ._shared.errors import ConflictError, NotFoundError, ServiceError
from .registration import (
    CompensationFailure,
    ExternalProviderError,
    PersistenceError,
    PostRegistrationError,
    PublishError,
    RegistrationCommand,
    RegistrationError,
    RegistrationErrorKind,
    RegistrationEvent,
    RegistrationResult,
    RegistrationSaga,
    ValidationError,
)

__all__ = [
    # Base
    "BaseService",
    "ServiceError",
    "NotFoundError",
    "ConflictError",
    # Registration
    "RegistrationSaga",
    "RegistrationCommand",
    "RegistrationResult",
    "RegistrationEvent",
    "RegistrationError",
    "RegistrationErrorKind",
    "ValidationError",
    "ExternalProviderError",
    "PersistenceError",
    "PostRegistrationError",
    "PublishError",
    "CompensationFailure",
]
