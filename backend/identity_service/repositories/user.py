"""Persistence helpers for :class:`identity_service.models.user.User`."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute

from identity_service.models.user import User
from identity_service.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for local users.

    Lookups by email normalise the input the same way the model validator
    does, so callers can pass raw command values.
    """

    model = User

    def _filterable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        return {
            "email": User.email,
            "username": User.username,
            "external_id": User.external_id,
            "status": User.status,
            "user_type": User.user_type,
        }

    def get_by_email(self, email: str) -> User | None:
        """Retrieve a user by email (case and whitespace insensitive).

        :param email: Email address to search for.
        :type email: str
        :returns: Matching user or ``None``.
        :rtype: User | None
        """
        stmt = select(User).where(User.email == email.strip().lower())
        return cast(User | None, self.session.execute(stmt).scalars().first())

    def get_by_username(self, username: str) -> User | None:
        """Retrieve a user by username."""
        return self.find_one(username=username.strip())

    def get_by_external_id(self, external_id: str) -> User | None:
        """Retrieve the user linked to an identity provider account."""
        return self.find_one(external_id=external_id)

    def exists_by_email(self, email: str) -> bool:
        """Return ``True`` when a user with the provided email exists.

        :param email: Email address to normalise and search.
        :type email: str
        :rtype: bool
        """
        stmt = select(User.id).where(User.email == email.strip().lower())
        return bool(self.session.execute(stmt).first())
