"""Registration saga: provisions an identity at the provider, locally and on the event stream."""

from __future__ import annotations

from .dto import RegistrationCommand, RegistrationEvent, RegistrationResult
from .errors import (
    CompensationFailure,
    ExternalProviderError,
    PersistenceError,
    PostRegistrationError,
    PublishError,
    RegistrationError,
    RegistrationErrorKind,
    ValidationError,
)
from .saga import RegistrationSaga, StepOutcome

__all__ = [
    "RegistrationSaga",
    "StepOutcome",
    "RegistrationCommand",
    "RegistrationEvent",
    "RegistrationResult",
    "RegistrationError",
    "RegistrationErrorKind",
    "ValidationError",
    "ExternalProviderError",
    "PersistenceError",
    "PostRegistrationError",
    "PublishError",
    "CompensationFailure",
]
