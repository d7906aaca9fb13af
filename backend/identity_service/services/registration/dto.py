"""
DTOs for the registration saga.

Contracts for provisioning an identity across the identity provider, the
local store and the event stream.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any
from uuid import uuid4

# --------------------------------------------------------------------------- #
# Input
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class RegistrationCommand:
    """
    Input payload for one registration.

    :param email: Login email (normalized by the ``User`` model).
    :type email: str
    :param password: Raw password, forwarded to the identity provider only.
    :type password: str
    :param first_name: Optional given name.
    :type first_name: str | None
    :param last_name: Optional family name.
    :type last_name: str | None
    :param phone_number: Optional phone number.
    :type phone_number: str | None
    :param additional_data: Domain-specific fields; exposed read-only.
    :type additional_data: Mapping[str, Any]
    """

    email: str
    password: str = field(repr=False)
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    additional_data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "additional_data", MappingProxyType(dict(self.additional_data or {}))
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Return ``additional_data[key]`` or ``default``."""
        return self.additional_data.get(key, default)


# --------------------------------------------------------------------------- #
# Output
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class RegistrationResult:
    """
    Outcome of a committed registration.

    :param user_id: Local user identifier.
    :type user_id: int
    :param profile_id: Local profile identifier.
    :type profile_id: int
    :param external_id: Identity provider account identifier.
    :type external_id: str
    :param profile_type: Profile discriminator (e.g. ``"PATIENT"``).
    :type profile_type: str
    :param success: Always ``True`` for returned results.
    :type success: bool
    """

    user_id: int
    profile_id: int
    external_id: str
    profile_type: str
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "profile_id": self.profile_id,
            "external_id": self.external_id,
            "profile_type": self.profile_type,
            "success": self.success,
        }


@dataclass(frozen=True, slots=True)
class RegistrationEvent:
    """
    Domain event emitted once a registration is committed.

    ``event_id`` and ``occurred_at`` form the envelope consumers use for
    de-duplication and ordering.
    """

    user_id: int
    profile_id: int
    profile_type: str
    email: str
    event_id: str = field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible event body."""
        return {
            "event_id": self.event_id,
            "occurred_at": self.occurred_at.isoformat(),
            "user_id": self.user_id,
            "profile_id": self.profile_id,
            "profile_type": self.profile_type,
            "email": self.email,
        }
