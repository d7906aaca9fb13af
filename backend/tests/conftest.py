"""
Shared fixtures.

One application and one SQLite connection serve the whole run. Each test
works inside an outer transaction plus a SAVEPOINT, so the commits issued by
the registration saga's Units of Work are visible to the test and discarded
afterwards. Saga collaborators are recording doubles from
:mod:`tests.helpers.doubles`.
"""

from __future__ import annotations

import os

import pytest
from identity_service.core.config import TestingConfig
from identity_service.core.extensions import db as _db
from identity_service.factory import create_app
from sqlalchemy import event
from sqlalchemy.orm import scoped_session, sessionmaker

from tests.helpers.doubles import RecordingEventPublisher, RecordingIdentityProvider


class TestConfig(TestingConfig):
    """In-memory database, no Redis, customer domain, quiet logs."""

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    REDIS_URL = None
    REGISTRATION_DOMAIN = "customer"
    LOG_LEVEL = "WARNING"


@pytest.fixture(scope="session")
def app():
    os.environ.pop("DATABASE_URL", None)
    return create_app(TestConfig)


@pytest.fixture(scope="session")
def db(app):
    """Create the schema once and keep an application context for the run."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="session")
def connection(db):
    conn = db.engine.connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture()
def session(db, connection):
    """
    Per-test session bound to the shared connection.

    ``db.session`` is swapped for this scoped session so repositories and
    Units of Work use it. A fresh SAVEPOINT is opened whenever one ends,
    and the outer transaction is rolled back on teardown.
    """
    outer = connection.begin()
    scoped = scoped_session(sessionmaker(bind=connection, autoflush=False))
    savepoint = connection.begin_nested()

    @event.listens_for(scoped(), "after_transaction_end")
    def _reopen_savepoint(sess, trans):  # pragma: no cover
        nonlocal savepoint
        if trans.nested and not trans._parent.nested:
            savepoint = connection.begin_nested()

    original = db.session
    db.session.remove()
    db.session = scoped
    try:
        yield scoped
    finally:
        scoped.remove()
        db.session = original
        outer.rollback()


@pytest.fixture(autouse=True)
def _isolated_app_globals(db):
    """Clear ``g`` on the run-wide app context so request ids do not leak between tests."""
    from flask import g

    g.pop("request_id", None)
    yield
    g.pop("request_id", None)


@pytest.fixture(autouse=True)
def _factories_session(session):
    """Point Factory Boy at the per-test session."""
    from tests.factories import SQLAlchemySession

    SQLAlchemySession.set(session)
    yield


# -- Registration collaborators -------------------------------------------------


@pytest.fixture()
def idp():
    return RecordingIdentityProvider()


@pytest.fixture()
def publisher():
    return RecordingEventPublisher()


@pytest.fixture()
def make_saga(idp, publisher):
    """
    Factory for :class:`RegistrationSaga` wired to ``idp`` and ``publisher``.

    Keyword arguments override constructor arguments, usually ``domain``.
    """
    from identity_service.services.registration import RegistrationSaga
    from identity_service.services.registration.domains import get_domain

    def _make(**overrides):
        kwargs = {
            "domain": get_domain("customer"),
            "identity_provider": idp,
            "publisher": publisher,
            "topic": "registration-events",
        }
        kwargs.update(overrides)
        return RegistrationSaga(**kwargs)

    return _make
