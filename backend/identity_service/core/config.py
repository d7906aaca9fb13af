"""
Environment-driven settings for the identity service.

``APP_ENV`` picks one of the classes below; every value can be overridden
through an environment variable of the same name (a ``.env`` file is
honoured in development).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Final

from dotenv import load_dotenv

ENV_VAR: Final[str] = "APP_ENV"  # development | testing | production

load_dotenv()

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})


def env_bool(name: str, default: bool = False) -> bool:
    """
    Read a boolean flag.

    :param name: Environment variable name.
    :param default: Returned when the variable is unset.
    :returns: ``True`` for ``1/true/yes/y/on`` (any case), else ``False``.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def env_float(name: str, default: float) -> float:
    """
    Read a strictly positive number of seconds.

    :param name: Environment variable name.
    :param default: Returned when the variable is unset or blank.
    :raises ValueError: If the value is not a positive number.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = float(raw)
    if value <= 0:
        raise ValueError(f"{name} must be a positive number of seconds, got {raw!r}")
    return value


class BaseConfig:
    """
    Settings shared by every environment.

    Registration
        ``REGISTRATION_DOMAIN`` selects the profile variant this deployment
        provisions (``customer``, ``patient`` or ``student``);
        ``REGISTRATION_TOPIC`` names the topic receiving registration events.
    Identity provider
        ``IDP_BACKEND`` is ``memory`` or ``http``. The HTTP gateway uses
        ``IDP_BASE_URL``, ``IDP_API_TOKEN`` and ``IDP_TIMEOUT_SECONDS``.
    Event stream
        ``EVENT_BACKEND`` is ``memory`` or ``redis``. Redis Streams need
        ``REDIS_URL``; stream keys are ``EVENT_STREAM_PREFIX + topic`` and
        ``PUBLISH_TIMEOUT_SECONDS`` bounds each publish.
    """

    API_BASE_PREFIX = "/api"
    APP_VERSION = os.getenv("APP_VERSION", "dev")
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    REGISTRATION_DOMAIN = os.getenv("REGISTRATION_DOMAIN", "customer")
    REGISTRATION_TOPIC = os.getenv("REGISTRATION_TOPIC", "registration-events")

    IDP_BACKEND = os.getenv("IDP_BACKEND", "memory")
    IDP_BASE_URL = os.getenv("IDP_BASE_URL")
    IDP_API_TOKEN = os.getenv("IDP_API_TOKEN")
    IDP_TIMEOUT_SECONDS = env_float("IDP_TIMEOUT_SECONDS", 5.0)

    EVENT_BACKEND = os.getenv("EVENT_BACKEND", "memory")
    REDIS_URL = os.getenv("REDIS_URL")
    EVENT_STREAM_PREFIX = os.getenv("EVENT_STREAM_PREFIX", "events:")
    PUBLISH_TIMEOUT_SECONDS = env_float("PUBLISH_TIMEOUT_SECONDS", 3.0)

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Local development: debug on, in-memory adapters unless overridden."""

    DEBUG = env_bool("FLASK_DEBUG", True)


class TestingConfig(BaseConfig):
    """Test runs: in-memory database and adapters, exceptions propagate to pytest."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    PROPAGATE_EXCEPTIONS = True
    IDP_BACKEND = "memory"
    EVENT_BACKEND = "memory"


class ProductionConfig(BaseConfig):
    """Production: real identity provider over HTTP and Redis Streams by default."""

    SQLALCHEMY_ECHO = False
    IDP_BACKEND = os.getenv("IDP_BACKEND", "http")
    EVENT_BACKEND = os.getenv("EVENT_BACKEND", "redis")


CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the class named by ``APP_ENV``; unknown or unset means development."""
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
