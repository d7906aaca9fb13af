"""User model: the locally-owned identity record."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, validates

from identity_service.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin


def normalize_email(value: str) -> str:
    """
    Trim and lowercase an email, rejecting values without a dotted domain.

    :raises ValueError: If the email is missing or malformed.
    """
    if not value or not isinstance(value, str):
        raise ValueError("Email is required.")
    v = value.strip().lower()
    local, _, domain = v.rpartition("@")
    if not local or "." not in domain:
        raise ValueError("Email format looks invalid.")
    return v


class UserStatus(str, Enum):
    """Lifecycle status of a local user."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"


class User(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Local identity record linked to an external identity provider account.

    Credentials are never stored here; the identity provider owns them.

    Fields
    ------
    username : str
        Unique handle. Stored trimmed.
    email : str
        Unique login email. Stored normalized (lowercase, trimmed).
    external_id : str | None
        Identifier of the account at the identity provider. Write-once.
    first_name, last_name, phone_number : str | None
        Direct PII captured at registration.
    user_type : str
        Registration domain that created the user (e.g. ``"patient"``).
    status : UserStatus
        Lifecycle status, ``PENDING`` on creation.
    email_verified, phone_verified : bool
        Verification flags mirrored from the identity provider.
    last_login : datetime | None
        Last successful login, maintained by authentication flows.
    version : int
        Optimistic concurrency counter managed by SQLAlchemy.
    """

    __tablename__ = "users"
    __repr_attrs__ = ("email", "user_type")

    username: Mapped[str] = mapped_column(String(254), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    user_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        SAEnum(UserStatus, name="enum_user_status", native_enum=True, create_constraint=True),
        nullable=False,
        default=UserStatus.PENDING,
    )
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    phone_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("external_id", name="uq_users_external_id"),
        Index("ix_users_email", "email"),
        Index("ix_users_external_id", "external_id"),
    )

    __mapper_args__ = {"version_id_col": version}

    # -------------------- Convenience --------------------
    @property
    def full_name(self) -> str:
        """Return ``"<first> <last>"`` skipping missing parts."""
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def activate(self) -> None:
        """Move the user to ``ACTIVE``."""
        self.status = UserStatus.ACTIVE

    # -------------------- Validators --------------------
    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        """
        Normalize and validate email.

        :param key: Field name (``email``).
        :type key: str
        :param value: Email to normalize.
        :type value: str
        :returns: Normalized email (lowercased/trimmed).
        :rtype: str
        :raises ValueError: If email is missing or malformed.
        """
        return normalize_email(value)

    @validates("username")
    def _normalize_username(self, key: str, value: str) -> str:
        """Trim the username and reject blanks."""
        if not isinstance(value, str):
            raise ValueError("Username is required.")
        v = value.strip()
        if not v:
            raise ValueError("Username is required.")
        return v

    @validates("external_id")
    def _guard_external_id(self, key: str, value: str | None) -> str | None:
        """
        Make ``external_id`` write-once.

        :raises ValueError: If a different identifier is assigned after it was set.
        """
        current = self.__dict__.get("external_id")
        if current is not None and value != current:
            raise ValueError("external_id is immutable once set.")
        return value
