"""Column and representation mixins shared by the identity models."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column


class PKMixin:
    """Integer surrogate key ``id``; local rows are referenced by it, never by ``external_id``."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class TimestampMixin:
    """
    Audit timestamps maintained by the database.

    ``created_at`` is set on insert; ``updated_at`` is refreshed on every
    update, including the status change done by post-registration hooks.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class ReprMixin:
    """
    ``<ClassName id=... attr=...>`` built from :attr:`__repr_attrs__`.

    Credentials and free-form attributes are never listed; models choose
    which identifying columns appear.
    """

    __repr_attrs__: ClassVar[tuple[str, ...]] = ()

    def __repr__(self) -> str:
        parts = [f"id={getattr(self, 'id', None)}"]
        parts.extend(f"{name}={getattr(self, name, None)!r}" for name in self.__repr_attrs__)
        return f"<{type(self).__name__} {' '.join(parts)}>"
