"""
Extension points a registration domain implements.

A domain turns a :class:`RegistrationCommand` into the domain-specific
``User`` and ``Profile`` rows and the metadata sent to the identity provider.
The saga stays domain-agnostic and calls these hooks in a fixed order.
"""

from __future__ import annotations

import logging
from abc import ABC
from typing import Any, ClassVar

from identity_service.models.profile import Profile
from identity_service.models.user import User
from identity_service.services.registration.dto import RegistrationCommand

log = logging.getLogger(__name__)


class RegistrationDomain(ABC):
    """
    Base registration domain.

    Subclasses set :attr:`name`, :attr:`profile_model` and, usually,
    :attr:`default_permissions`, then override the hooks they need.

    Hooks may raise; the saga converts any exception into the failure of the
    step that invoked the hook.
    """

    #: Registry key and ``User.user_type`` value (e.g. ``"patient"``).
    name: ClassVar[str]
    #: Mapped :class:`Profile` subclass created for this domain.
    profile_model: ClassVar[type[Profile]]
    #: Permissions granted to every new profile.
    default_permissions: ClassVar[tuple[str, ...]] = ()

    @property
    def profile_type(self) -> str:
        """Profile discriminator, taken from the mapped subclass."""
        return str(self.profile_model.__mapper__.polymorphic_identity)

    # -------------------- Hooks --------------------

    def validate(self, command: RegistrationCommand) -> None:
        """
        Check domain-specific fields of ``command``.

        :raises identity_service.services.registration.errors.ValidationError:
            When a domain rule is violated.
        """

    def build_metadata(self, command: RegistrationCommand) -> dict[str, Any]:
        """Return the profile metadata stored with the identity provider account."""
        metadata: dict[str, Any] = {"domain": self.name}
        for key in ("first_name", "last_name", "phone_number"):
            value = getattr(command, key)
            if value:
                metadata[key] = value
        return metadata

    def build_user(self, command: RegistrationCommand, external_id: str) -> User:
        """Build the (unsaved) local user linked to ``external_id``."""
        return User(
            username=command.email.strip().lower(),
            email=command.email,
            external_id=external_id,
            first_name=command.first_name,
            last_name=command.last_name,
            phone_number=command.phone_number,
            user_type=self.name,
        )

    def build_profile(self, command: RegistrationCommand, user: User) -> Profile:
        """Build the (unsaved) profile owned by ``user``."""
        profile = self.profile_model(user=user)
        for permission in self.default_permissions:
            profile.add_permission(permission)
        self.populate_profile(profile, command)
        return profile

    def populate_profile(self, profile: Profile, command: RegistrationCommand) -> None:
        """Copy domain fields from ``command`` onto ``profile`` attributes."""

    def post_register(self, profile: Profile) -> None:
        """Run after the user and profile are committed."""

    def cleanup(self, command: RegistrationCommand, cause: BaseException) -> None:
        """
        Undo domain-side effects of a failed registration.

        Local rows and the external account are removed by the saga itself;
        override this only for state the domain created on its own.
        """
        log.info(
            "Registration cleanup for domain=%s email=%s cause=%s",
            self.name,
            command.email,
            type(cause).__name__,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
