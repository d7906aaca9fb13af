"""Healthcare registration domain."""

from __future__ import annotations

from datetime import date
from typing import Any

from identity_service.models.profile import PatientProfile, Profile
from identity_service.services.registration.dto import RegistrationCommand
from identity_service.services.registration.errors import ValidationError

from . import register_domain
from .base import RegistrationDomain


@register_domain("patient")
class PatientDomain(RegistrationDomain):
    """
    Patients register with a date of birth and, optionally, an insurance number.

    The profile requires verification by clinical staff before activation,
    so the user stays ``PENDING``.
    """

    profile_model = PatientProfile
    default_permissions = ("records:read-own",)

    def validate(self, command: RegistrationCommand) -> None:
        raw = command.get("date_of_birth")
        if not raw:
            raise ValidationError("date_of_birth is required.", rule="date_of_birth.required")
        try:
            born = date.fromisoformat(str(raw))
        except ValueError as exc:
            raise ValidationError(
                "date_of_birth must be an ISO date (YYYY-MM-DD).",
                rule="date_of_birth.format",
                cause=exc,
            ) from exc
        if born > date.today():
            raise ValidationError(
                "date_of_birth cannot be in the future.", rule="date_of_birth.future"
            )

    def build_metadata(self, command: RegistrationCommand) -> dict[str, Any]:
        metadata = super().build_metadata(command)
        metadata["date_of_birth"] = str(command.get("date_of_birth"))
        return metadata

    def populate_profile(self, profile: Profile, command: RegistrationCommand) -> None:
        profile.add_attribute("date_of_birth", str(command.get("date_of_birth")))
        insurance = command.get("insurance_number")
        if insurance:
            profile.add_attribute("insurance_number", str(insurance).strip())
