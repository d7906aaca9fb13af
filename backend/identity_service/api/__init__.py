"""HTTP API: versioned blueprints mounted under ``API_BASE_PREFIX``."""

from __future__ import annotations

from collections.abc import Iterable

from flask import Blueprint, Flask


def _join(*segments: str) -> str:
    return "/" + "/".join(s.strip("/") for s in segments if s.strip("/"))


def register_blueprint_group(
    app: Flask,
    *,
    base_prefix: str,
    entries: Iterable[tuple[Blueprint, str]],
) -> None:
    """
    Mount ``(blueprint, relative_prefix)`` pairs below ``base_prefix``.

    An empty relative prefix mounts the blueprint at the version root, so
    ``(health_bp, "")`` under ``/api/v1`` serves ``/api/v1/health``.
    """
    for bp, rel_prefix in entries:
        app.register_blueprint(bp, url_prefix=_join(base_prefix, rel_prefix))


def init_app(app: Flask) -> None:
    from identity_service.api.v1 import API_VERSION, REGISTRY

    base = app.config.get("API_BASE_PREFIX", "/api")
    register_blueprint_group(app, base_prefix=_join(base, API_VERSION), entries=REGISTRY)


__all__ = ["init_app", "register_blueprint_group"]
