"""Commerce registration domain."""

from __future__ import annotations

from identity_service.models.profile import CustomerProfile, Profile
from identity_service.services.registration.dto import RegistrationCommand
from identity_service.services.registration.errors import ValidationError

from . import register_domain
from .base import RegistrationDomain

LOYALTY_TIERS = ("basic", "silver", "gold")


@register_domain("customer")
class CustomerDomain(RegistrationDomain):
    """
    Customers need no extra fields and no verification.

    The post-registration hook activates the user straight away.
    """

    profile_model = CustomerProfile
    default_permissions = ("orders:create",)

    def validate(self, command: RegistrationCommand) -> None:
        tier = command.get("loyalty_tier")
        if tier is not None and str(tier).strip().lower() not in LOYALTY_TIERS:
            raise ValidationError(
                f"loyalty_tier must be one of {', '.join(LOYALTY_TIERS)}.",
                rule="loyalty_tier.choice",
            )

    def populate_profile(self, profile: Profile, command: RegistrationCommand) -> None:
        tier = command.get("loyalty_tier") or "basic"
        profile.add_attribute("loyalty_tier", str(tier).strip().lower())

    def post_register(self, profile: Profile) -> None:
        profile.user.activate()
