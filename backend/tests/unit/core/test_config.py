"""Unit tests for environment-driven configuration helpers."""

from __future__ import annotations

import fakeredis
import pytest
from identity_service.core import extensions
from identity_service.core.config import (
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    env_bool,
    env_float,
    get_config,
)
from identity_service.infra.idp.http_identity_provider import HttpIdentityProvider
from identity_service.infra.redis.redis_event_publisher import RedisStreamEventPublisher
from identity_service.services._shared.ports import InMemoryIdentityProvider


class TestEnvHelpers:
    @pytest.mark.parametrize("raw", ["1", "true", "YES", " on "])
    def test_env_bool_truthy(self, monkeypatch, raw):
        monkeypatch.setenv("FLAG", raw)
        assert env_bool("FLAG") is True

    def test_env_bool_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("FLAG", raising=False)
        assert env_bool("FLAG", True) is True

    def test_env_float(self, monkeypatch):
        monkeypatch.setenv("TIMEOUT", "2.5")
        assert env_float("TIMEOUT", 1.0) == 2.5

        monkeypatch.setenv("TIMEOUT", "  ")
        assert env_float("TIMEOUT", 1.0) == 1.0

    @pytest.mark.parametrize("raw", ["0", "-3", "soon"])
    def test_env_float_rejects_bad_values(self, monkeypatch, raw):
        monkeypatch.setenv("TIMEOUT", raw)
        with pytest.raises(ValueError):
            env_float("TIMEOUT", 1.0)


class TestGetConfig:
    @pytest.mark.parametrize(
        ("env", "expected"),
        [
            ("testing", TestingConfig),
            ("Production", ProductionConfig),
            ("unknown", DevelopmentConfig),
        ],
    )
    def test_selects_by_app_env(self, monkeypatch, env, expected):
        monkeypatch.setenv("APP_ENV", env)
        assert get_config() is expected


class TestCollaboratorWiring:
    def test_http_identity_provider_from_config(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "IDP_BACKEND", "http")
        monkeypatch.setitem(app.config, "IDP_BASE_URL", "https://idp.test")
        monkeypatch.setitem(app.config, "IDP_TIMEOUT_SECONDS", 1.5)

        gateway = extensions.build_identity_provider(app)

        assert isinstance(gateway, HttpIdentityProvider)
        assert gateway.timeout == 1.5

    def test_http_backend_requires_base_url(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "IDP_BACKEND", "http")
        monkeypatch.setitem(app.config, "IDP_BASE_URL", None)

        with pytest.raises(RuntimeError, match="IDP_BASE_URL"):
            extensions.build_identity_provider(app)

    def test_unknown_event_backend(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "EVENT_BACKEND", "kafka")

        with pytest.raises(RuntimeError, match="EVENT_BACKEND"):
            extensions.build_event_publisher(app)

    def test_redis_publisher_is_closed_at_exit(self, app, monkeypatch):
        """
        GIVEN the Redis event backend
        WHEN the publisher is built
        THEN its close() is registered to run at interpreter exit.
        """
        registered = []
        monkeypatch.setattr(extensions, "redis_client", fakeredis.FakeRedis())
        monkeypatch.setattr(extensions.atexit, "register", registered.append)
        monkeypatch.setitem(app.config, "EVENT_BACKEND", "redis")

        publisher = extensions.build_event_publisher(app)

        assert isinstance(publisher, RedisStreamEventPublisher)
        assert registered == [publisher.close]
        publisher.close()

    def test_saga_uses_configured_domain(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "REGISTRATION_DOMAIN", "student")
        monkeypatch.setitem(app.config, "REGISTRATION_TOPIC", "students")

        saga = extensions.build_registration_saga(app)

        assert saga.domain.name == "student"
        assert saga.topic == "students"
        assert isinstance(saga.identity_provider, InMemoryIdentityProvider)
