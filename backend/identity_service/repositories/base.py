"""
Persistence-only repository base (SQLAlchemy 2.x).

Repositories look rows up and stage writes; they never commit or roll
back, the Unit of Work does. Writes flush immediately so a constraint
violation is raised by the call that caused it: the registration saga
depends on this to tell a failed user insert from a failed profile insert.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import Select, and_, func, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from identity_service.core.extensions import db

E = TypeVar("E")


class BaseRepository(Generic[E]):
    """
    Repository for one mapped model.

    Subclasses set :attr:`model`, and may override :meth:`_default_eagerload`
    and :meth:`_filterable_fields`.

    :param session: Session of the enclosing Unit of Work; defaults to the
        Flask-scoped session.
    :type session: :class:`sqlalchemy.orm.Session` | None
    """

    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session if self._session is not None else cast(Session, db.session)

    # ------------------------------ Hooks ------------------------------------

    def _default_eagerload(self, stmt: Select[Any]) -> Select[Any]:
        """Attach loader options to every lookup issued by this repository."""
        return stmt

    def _filterable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]] | None:
        """
        Whitelist of equality filters accepted by :meth:`find_one` and :meth:`exists`.

        ``None`` allows any mapped attribute; with a mapping, unknown keys are
        dropped instead of raising.
        """
        return None

    def _where(self, stmt: Select[Any], filters: Mapping[str, Any]) -> Select[Any]:
        allowed = self._filterable_fields()
        if allowed is None:
            clauses = [getattr(self.model, key) == value for key, value in filters.items()]
        else:
            clauses = [allowed[key] == value for key, value in filters.items() if key in allowed]
        return stmt.where(and_(*clauses)) if clauses else stmt

    # ------------------------------ Reads ------------------------------------

    def get(self, entity_id: int) -> E | None:
        """Return the row with primary key ``entity_id`` or ``None``."""
        stmt = self._default_eagerload(
            select(self.model).where(self.model.id == entity_id)  # type: ignore[attr-defined]
        )
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def find_one(self, **filters: Any) -> E | None:
        """Return the first row matching the equality ``filters`` or ``None``."""
        stmt = self._default_eagerload(self._where(select(self.model), filters))
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def exists(self, **filters: Any) -> bool:
        stmt = self._where(select(func.count()).select_from(self.model), filters)
        return bool(self.session.execute(stmt).scalar())

    # ------------------------------ Writes -----------------------------------

    def add(self, instance: E) -> E:
        """
        Stage ``instance`` and flush it so its primary key is assigned.

        :raises sqlalchemy.exc.IntegrityError: On a constraint violation.
        """
        self.session.add(instance)
        self.session.flush()
        return instance

    def delete(self, instance: E) -> None:
        """Delete ``instance`` and flush; dependent rows follow the model cascades."""
        self.session.delete(instance)
        self.session.flush()
