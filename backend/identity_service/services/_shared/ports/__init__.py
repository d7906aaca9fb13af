"""
identity_service.services._shared.ports
=======================================

*Ports* (hexagonal interfaces) the service layer depends on, together with
the in-memory implementations used in development and tests.

Modules
-------
- :mod:`identity_provider`:
    :class:`~.IdentityProviderGateway` : external account lifecycle.
- :mod:`event_publisher`:
    :class:`~.EventPublisher` : domain event emission.

Concrete network adapters live under ``identity_service.infra``.
"""

from __future__ import annotations

from .event_publisher import (
    DomainEvent,
    EventPublisher,
    EventPublishFailed,
    InMemoryEventPublisher,
)
from .identity_provider import (
    IdentityProviderGateway,
    IdentityProviderUnavailable,
    InMemoryIdentityProvider,
)

__all__ = [
    "DomainEvent",
    "EventPublisher",
    "EventPublishFailed",
    "InMemoryEventPublisher",
    "IdentityProviderGateway",
    "IdentityProviderUnavailable",
    "InMemoryIdentityProvider",
]
