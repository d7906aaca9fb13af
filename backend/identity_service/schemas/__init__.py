"""Marshmallow schemas for request/response payloads."""

from __future__ import annotations

from .registration import RegistrationResultSchema, RegistrationSchema

__all__ = ["RegistrationResultSchema", "RegistrationSchema"]
