"""Persistence helpers for the :class:`identity_service.models.profile.Profile` hierarchy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select
from sqlalchemy.orm import selectinload

from identity_service.models.profile import Profile
from identity_service.repositories.base import BaseRepository


class ProfileRepository(BaseRepository[Profile]):
    """Repository for profiles of any variant.

    Queries are issued against the base mapper; SQLAlchemy returns the
    concrete subclass selected by ``profile_type``.
    """

    model = Profile

    def _default_eagerload(self, stmt: Select[Any]) -> Select[Any]:
        return stmt.options(selectinload(Profile.user))

    def get_by_user_id(self, user_id: int) -> Profile | None:
        """Return the profile owned by ``user_id`` or ``None``."""
        return self.find_one(user_id=user_id)
