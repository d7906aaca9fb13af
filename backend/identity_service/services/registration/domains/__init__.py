"""
Registry of registration domains.

Each deployable domain registers itself under a short name; the application
selects one through ``REGISTRATION_DOMAIN`` when it builds the saga.
"""

from __future__ import annotations

from collections.abc import Callable

from .base import RegistrationDomain

_REGISTRY: dict[str, type[RegistrationDomain]] = {}


def register_domain(
    name: str,
) -> Callable[[type[RegistrationDomain]], type[RegistrationDomain]]:
    """Class decorator adding a domain to the registry under ``name``."""

    def decorator(cls: type[RegistrationDomain]) -> type[RegistrationDomain]:
        key = name.strip().lower()
        existing = _REGISTRY.get(key)
        if existing is not None and existing is not cls:
            raise ValueError(f"Registration domain {key!r} is already registered.")
        cls.name = key
        _REGISTRY[key] = cls
        return cls

    return decorator


def get_domain(name: str) -> RegistrationDomain:
    """
    Instantiate the domain registered as ``name``.

    :raises KeyError: When no domain is registered under ``name``.
    """
    key = (name or "").strip().lower()
    try:
        return _REGISTRY[key]()
    except KeyError:
        known = ", ".join(sorted(_REGISTRY)) or "<none>"
        raise KeyError(f"Unknown registration domain {name!r}; known: {known}") from None


def available_domains() -> list[str]:
    return sorted(_REGISTRY)


# Built-in domains register on import.
from . import customer, patient, student  # noqa: E402,F401

__all__ = [
    "RegistrationDomain",
    "available_domains",
    "get_domain",
    "register_domain",
]
