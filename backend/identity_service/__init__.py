"""Identity service: registration saga behind a Flask API and CLI."""

from __future__ import annotations

from .factory import create_app

__all__ = ["create_app"]
