"""Units of Work over the Flask-SQLAlchemy scoped session."""

from __future__ import annotations

import logging
from contextlib import suppress

from sqlalchemy import event
from sqlalchemy.orm import Session

from identity_service.core.extensions import db
from identity_service.repositories import ProfileRepository, UserRepository
from identity_service.uow.base import UnitOfWork

log = logging.getLogger(__name__)


class SQLAlchemyRepositoryContainer:
    """``users`` and ``profiles`` repositories bound to one session."""

    def __init__(self, *, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session=session)
        self.profiles = ProfileRepository(session=session)


class SQLAlchemyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Writer scope: commit on a clean exit, roll back when the block raises.

    A commit that fails is rolled back and re-raised, so the caller sees it
    as a failure of the work done inside the block.
    """

    def __init__(self) -> None:
        super().__init__(session=db.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
            return
        try:
            self.commit()
        except Exception:
            log.warning("Commit failed; rolling back", exc_info=True)
            self.rollback()
            raise

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class SQLAlchemyReadOnlyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Reader scope used by lookups such as ``RegistrationSaga.republish``.

    While open, a ``before_flush`` listener rejects pending ORM writes;
    :meth:`commit` always raises and the session is rolled back on exit.
    """

    def __init__(self) -> None:
        super().__init__(session=db.session)
        self._listening = False

    def __enter__(self) -> SQLAlchemyReadOnlyUnitOfWork:
        event.listen(self.session, "before_flush", self._block_flush)
        self._listening = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            with suppress(Exception):
                self.session.rollback()
        finally:
            if self._listening:
                event.remove(self.session, "before_flush", self._block_flush)
                self._listening = False

    @staticmethod
    def _block_flush(session, flush_context, instances) -> None:
        if session.new or session.dirty or session.deleted:
            raise RuntimeError(
                "Read-only UnitOfWork: ORM flush blocked (new/dirty/deleted objects present)."
            )

    def commit(self) -> None:
        raise RuntimeError("Read-only UnitOfWork does not allow commit().")

    def rollback(self) -> None:
        self.session.rollback()
