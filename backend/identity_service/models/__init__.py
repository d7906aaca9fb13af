from identity_service.models.profile import (
    CustomerProfile,
    PatientProfile,
    Profile,
    ProfileAttribute,
    ProfilePermission,
    StudentProfile,
)
from identity_service.models.user import User, UserStatus

__all__ = [
    "CustomerProfile",
    "PatientProfile",
    "Profile",
    "ProfileAttribute",
    "ProfilePermission",
    "StudentProfile",
    "User",
    "UserStatus",
]
