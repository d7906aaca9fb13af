"""Profile model hierarchy (single-table inheritance keyed by ``profile_type``)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.ext.associationproxy import AssociationProxy, association_proxy
from sqlalchemy.orm import (
    Mapped,
    attribute_keyed_dict,
    backref,
    mapped_column,
    relationship,
    validates,
)

from identity_service.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin

if TYPE_CHECKING:
    from .user import User


class ProfileAttribute(PKMixin, db.Model):
    """One ``key -> value`` string attribute attached to a profile."""

    __tablename__ = "profile_attributes"

    profile_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        UniqueConstraint("profile_id", "key", name="uq_profile_attributes_profile_key"),
        Index("ix_profile_attributes_profile_id", "profile_id"),
    )


class ProfilePermission(PKMixin, db.Model):
    """A permission string granted to a profile."""

    __tablename__ = "profile_permissions"

    profile_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("profile_id", "name", name="uq_profile_permissions_profile_name"),
        Index("ix_profile_permissions_profile_id", "profile_id"),
    )


class Profile(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Domain profile attached 1:1 to a :class:`User`.

    Concrete variants are mapped subclasses identified by ``profile_type``;
    each supplies :attr:`profile_identifier` and :attr:`requires_verification`.

    Fields
    ------
    user_id : int
        Owning user. Unique (1:1) and fixed once assigned.
    profile_type : str
        Discriminator (``"PATIENT"``, ``"STUDENT"``, ``"CUSTOMER"``).
    attributes : dict[str, str]
        Additional string attributes (proxied to ``profile_attributes``).
    permissions : set[str]
        Granted permission strings (proxied to ``profile_permissions``).
    is_verified, verification_date, verified_by
        Verification state and audit trail.
    version : int
        Optimistic concurrency counter managed by SQLAlchemy.
    """

    __tablename__ = "profiles"
    __repr_attrs__ = ("profile_type", "user_id")

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    profile_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verified_by: Mapped[str | None] = mapped_column(String(254), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    user: Mapped[User] = relationship(
        "User",
        backref=backref(
            "profile", uselist=False, cascade="all, delete-orphan", passive_deletes=True
        ),
    )

    attribute_rows: Mapped[dict[str, ProfileAttribute]] = relationship(
        "ProfileAttribute",
        collection_class=attribute_keyed_dict("key"),
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    permission_rows: Mapped[set[ProfilePermission]] = relationship(
        "ProfilePermission",
        collection_class=set,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    attributes: AssociationProxy[dict[str, str | None]] = association_proxy(
        "attribute_rows",
        "value",
        creator=lambda key, value: ProfileAttribute(key=key, value=value),
    )
    permissions: AssociationProxy[set[str]] = association_proxy(
        "permission_rows",
        "name",
        creator=lambda name: ProfilePermission(name=name),
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_profiles_user"),
        Index("ix_profiles_profile_type", "profile_type"),
    )

    __mapper_args__ = {
        "polymorphic_on": profile_type,
        "version_id_col": version,
    }

    # -------------------- Variant contract --------------------
    @property
    def profile_identifier(self) -> str:
        """Human-facing identifier derived per variant."""
        raise NotImplementedError

    @property
    def requires_verification(self) -> bool:
        """Whether the profile must be verified before activation."""
        raise NotImplementedError

    # -------------------- Attributes & permissions --------------------
    def add_attribute(self, key: str, value: str | None) -> None:
        if not key or not key.strip():
            raise ValueError("Attribute key is required.")
        self.attributes[key.strip()] = None if value is None else str(value)

    def get_attribute(self, key: str) -> str | None:
        return self.attributes.get(key)

    def add_permission(self, permission: str) -> None:
        if not permission or not permission.strip():
            raise ValueError("Permission is required.")
        self.permissions.add(permission.strip())

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def mark_verified(self, actor: str, *, at: datetime | None = None) -> None:
        """
        Record that ``actor`` verified this profile.

        :param actor: Who performed the verification.
        :type actor: str
        :param at: Verification time, defaults to now (UTC).
        :type at: datetime | None
        """
        if not actor:
            raise ValueError("Verifying actor is required.")
        self.is_verified = True
        self.verification_date = at or datetime.now(UTC)
        self.verified_by = actor

    # -------------------- Validators --------------------
    @validates("user_id")
    def _guard_user_id(self, key: str, value: int) -> int:
        current = self.__dict__.get("user_id")
        if current is not None and value != current:
            raise ValueError("A profile's owning user cannot change.")
        return value

    @validates("user")
    def _guard_user(self, key: str, value: User) -> User:
        current = self.__dict__.get("user")
        if current is not None and value is not current:
            raise ValueError("A profile's owning user cannot change.")
        return value


class PatientProfile(Profile):
    """Healthcare profile; must be verified by clinical staff."""

    __mapper_args__ = {"polymorphic_identity": "PATIENT"}

    @property
    def profile_identifier(self) -> str:
        return f"PAT-{self.id:08d}"

    @property
    def requires_verification(self) -> bool:
        return True


class StudentProfile(Profile):
    """Education profile keyed by the institution's student number."""

    __mapper_args__ = {"polymorphic_identity": "STUDENT"}

    @property
    def profile_identifier(self) -> str:
        institution = (self.get_attribute("institution") or "").upper()
        return f"{institution}-{self.get_attribute('student_number')}"

    @property
    def requires_verification(self) -> bool:
        return True


class CustomerProfile(Profile):
    """Commerce profile; usable immediately after registration."""

    __mapper_args__ = {"polymorphic_identity": "CUSTOMER"}

    @property
    def profile_identifier(self) -> str:
        return f"CUSTOMER-{self.id}"

    @property
    def requires_verification(self) -> bool:
        return False
