"""
Factory Boy base classes bound to the per-test transactional session.

Factories only flush. Tests that hand rows to a Unit of Work that may roll
back (the saga, the read-only UoW) call :meth:`BaseFactory.create_committed`
so the rows survive that rollback.
"""

from __future__ import annotations

import factory


class SQLAlchemySession:
    """Holder for the session installed by the ``session`` fixture."""

    _session = None

    @classmethod
    def set(cls, session):
        cls._session = session

    @classmethod
    def get(cls):
        """
        Return the installed session.

        :raises RuntimeError: When a factory runs outside a test using ``session``.
        """
        if cls._session is None:
            raise RuntimeError("No factory session installed; request the 'session' fixture.")
        return cls._session


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Flush-only factory over :class:`SQLAlchemySession`."""

    class Meta:
        abstract = True
        # Resolved lazily so each test sees its own scoped session.
        sqlalchemy_session_factory = SQLAlchemySession.get
        sqlalchemy_session_persistence = "flush"

    @classmethod
    def create_committed(cls, **kwargs):
        """Create an instance and commit the surrounding savepoint."""
        instance = cls.create(**kwargs)
        SQLAlchemySession.get().commit()
        return instance
