"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

import atexit
from typing import TYPE_CHECKING, Any, cast

import redis  # type: ignore[import-untyped]
from flask import Flask, current_app
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import MetaData

if TYPE_CHECKING:
    from identity_service.services._shared.ports import EventPublisher, IdentityProviderGateway
    from identity_service.services.registration.saga import RegistrationSaga

# Global naming convention for all constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singletons (import-safe)
db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
migrate = Migrate(render_as_batch=True)
redis_client: redis.Redis | None = None


def init_app(app: Flask) -> None:
    """Initialize SQLAlchemy, migrations, Redis and the registration collaborators.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. This call imports the
        :mod:`identity_service.models` package to ensure SQLAlchemy metadata is
        ready for migrations.
    """
    db.init_app(app)

    # Ensure models are imported so Alembic sees metadata
    from identity_service import models as _models  # noqa: F401

    migrate.init_app(app, db)

    global redis_client
    redis_url = app.config.get("REDIS_URL")
    if not redis_url:
        redis_client = None
        app.extensions.pop("redis_client", None)
    else:
        redis_client = redis.Redis.from_url(
            redis_url,
            socket_timeout=app.config.get("PUBLISH_TIMEOUT_SECONDS"),
            socket_connect_timeout=app.config.get("PUBLISH_TIMEOUT_SECONDS"),
        )
        try:
            redis_client.ping()
        except RedisError as exc:
            raise RuntimeError(f"Failed to connect to Redis at {redis_url!r}") from exc
        app.extensions["redis_client"] = redis_client

    app.extensions["identity_provider"] = build_identity_provider(app)
    app.extensions["event_publisher"] = build_event_publisher(app)
    app.extensions["registration_saga"] = build_registration_saga(app)


def get_redis() -> redis.Redis:
    """Return the initialized Redis client."""
    if redis_client is None:
        raise RuntimeError("Redis client is not initialized. Call init_app() first.")
    return redis_client


# --------------------------------------------------------------------------- #
# Registration collaborators
# --------------------------------------------------------------------------- #


def build_identity_provider(app: Flask) -> IdentityProviderGateway:
    """Build the identity provider gateway selected by ``IDP_BACKEND``.

    :param app: Configured application.
    :type app: flask.Flask
    :returns: Gateway instance.
    :raises RuntimeError: When the backend is unknown or misconfigured.
    """
    backend = str(app.config.get("IDP_BACKEND", "memory")).strip().lower()
    if backend == "memory":
        from identity_service.services._shared.ports import InMemoryIdentityProvider

        return InMemoryIdentityProvider()
    if backend == "http":
        from identity_service.infra.idp.http_identity_provider import HttpIdentityProvider

        base_url = app.config.get("IDP_BASE_URL")
        if not base_url:
            raise RuntimeError("IDP_BASE_URL is required when IDP_BACKEND='http'.")
        return HttpIdentityProvider(
            base_url=base_url,
            api_token=app.config.get("IDP_API_TOKEN"),
            timeout=float(app.config.get("IDP_TIMEOUT_SECONDS", 5.0)),
        )
    raise RuntimeError(f"Unknown IDP_BACKEND {backend!r}; expected 'memory' or 'http'.")


def build_event_publisher(app: Flask) -> EventPublisher:
    """Build the event publisher selected by ``EVENT_BACKEND``.

    :param app: Configured application.
    :type app: flask.Flask
    :returns: Publisher instance.
    :raises RuntimeError: When the backend is unknown or Redis is not configured.
    """
    backend = str(app.config.get("EVENT_BACKEND", "memory")).strip().lower()
    if backend == "memory":
        from identity_service.services._shared.ports import InMemoryEventPublisher

        return InMemoryEventPublisher()
    if backend == "redis":
        from identity_service.infra.redis.redis_event_publisher import RedisStreamEventPublisher

        publisher = RedisStreamEventPublisher(
            r=get_redis(), stream_prefix=app.config.get("EVENT_STREAM_PREFIX", "events:")
        )
        # The async worker pool lives as long as the process.
        atexit.register(publisher.close)
        return publisher
    raise RuntimeError(f"Unknown EVENT_BACKEND {backend!r}; expected 'memory' or 'redis'.")


def build_registration_saga(app: Flask | None = None, **overrides: Any) -> RegistrationSaga:
    """Construct a :class:`RegistrationSaga` for the configured domain.

    The domain is resolved once, here, from ``REGISTRATION_DOMAIN``; callers
    may override any constructor argument (``domain``, ``identity_provider``,
    ``publisher``, ``topic``).

    :param app: Application to read configuration from (defaults to ``current_app``).
    :type app: flask.Flask | None
    :returns: Ready-to-run saga.
    :rtype: RegistrationSaga
    """
    from identity_service.services.registration.domains import get_domain
    from identity_service.services.registration.saga import RegistrationSaga

    target = app or current_app
    kwargs: dict[str, Any] = {
        "domain": get_domain(target.config.get("REGISTRATION_DOMAIN", "customer")),
        "identity_provider": target.extensions["identity_provider"],
        "publisher": target.extensions["event_publisher"],
        "topic": target.config.get("REGISTRATION_TOPIC", "registration-events"),
    }
    kwargs.update(overrides)
    return RegistrationSaga(**kwargs)


def get_registration_saga() -> RegistrationSaga:
    """Return the saga built for the current application."""
    return cast("RegistrationSaga", current_app.extensions["registration_saga"])
