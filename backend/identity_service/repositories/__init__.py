"""Repository package exposing persistence-layer access for all domain models."""

from __future__ import annotations

from identity_service.repositories.base import BaseRepository
from identity_service.repositories.profile import ProfileRepository
from identity_service.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "ProfileRepository",
    "UserRepository",
]
