"""Education registration domain."""

from __future__ import annotations

from typing import Any

from identity_service.models.profile import Profile, StudentProfile
from identity_service.services.registration.dto import RegistrationCommand
from identity_service.services.registration.errors import ValidationError

from . import register_domain
from .base import RegistrationDomain


@register_domain("student")
class StudentDomain(RegistrationDomain):
    """Students register with their institution and student number."""

    profile_model = StudentProfile
    default_permissions = ("courses:enroll",)

    REQUIRED_FIELDS = ("student_number", "institution")

    def validate(self, command: RegistrationCommand) -> None:
        for key in self.REQUIRED_FIELDS:
            value = command.get(key)
            if value is None or not str(value).strip():
                raise ValidationError(f"{key} is required.", rule=f"{key}.required")

    def build_metadata(self, command: RegistrationCommand) -> dict[str, Any]:
        metadata = super().build_metadata(command)
        metadata["institution"] = str(command.get("institution")).strip()
        return metadata

    def populate_profile(self, profile: Profile, command: RegistrationCommand) -> None:
        for key in self.REQUIRED_FIELDS:
            profile.add_attribute(key, str(command.get(key)).strip())
