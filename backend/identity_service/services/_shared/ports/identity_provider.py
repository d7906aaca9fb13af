"""Port for the external identity provider that owns credentials."""

from __future__ import annotations

import secrets
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import uuid4


class IdentityProviderUnavailable(Exception):
    """Raised by gateways when the provider rejects a call, times out or is unreachable."""


class IdentityProviderGateway(Protocol):
    """
    Operations offered by an external identity provider.

    Only :meth:`create_account` and :meth:`delete_account` are used by the
    registration saga; the remaining methods belong to account management and
    authentication flows built on top of the same provider.
    """

    def create_account(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        """Create an account and return its external identifier."""

    def delete_account(self, external_id: str) -> None:
        """Delete an account. Deleting an unknown account is a no-op."""

    def update_account(self, external_id: str, updates: Mapping[str, Any]) -> None: ...

    def get_account(self, external_id: str) -> dict[str, Any]: ...

    def verify_password(self, email: str, password: str) -> bool: ...

    def generate_password_reset_token(self, email: str) -> str: ...

    def reset_password(self, token: str, new_password: str) -> None: ...

    def verify_email(self, external_id: str) -> None: ...

    def is_email_verified(self, external_id: str) -> bool: ...

    def refresh_token(self, refresh_token: str) -> str: ...

    def logout(self, external_id: str) -> None: ...

    def enable_mfa(self, external_id: str, method: str) -> None: ...

    def disable_mfa(self, external_id: str) -> None: ...


@dataclass
class _Account:
    external_id: str
    email: str
    password: str
    metadata: dict[str, Any]
    email_verified: bool = False
    mfa_method: str | None = None
    sessions: set[str] = field(default_factory=set)


class InMemoryIdentityProvider(IdentityProviderGateway):
    """
    Process-local identity provider for development and tests.

    .. note::
       Uses a threading lock so concurrent registrations see a consistent
       account table.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, _Account] = {}
        self._reset_tokens: dict[str, str] = {}
        self._refresh_tokens: dict[str, str] = {}
        self._lock = threading.Lock()

    # ------------------------- helpers -------------------------

    def _require(self, external_id: str) -> _Account:
        account = self._accounts.get(external_id)
        if account is None:
            raise IdentityProviderUnavailable(f"Unknown account {external_id!r}.")
        return account

    def _find_by_email(self, email: str) -> _Account | None:
        needle = email.strip().lower()
        return next((a for a in self._accounts.values() if a.email == needle), None)

    # -------------------------- API ----------------------------

    def create_account(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        with self._lock:
            external_id = f"idp-{uuid4().hex}"
            self._accounts[external_id] = _Account(
                external_id=external_id,
                email=email.strip().lower(),
                password=password,
                metadata=dict(metadata),
            )
            return external_id

    def delete_account(self, external_id: str) -> None:
        with self._lock:
            self._accounts.pop(external_id, None)

    def update_account(self, external_id: str, updates: Mapping[str, Any]) -> None:
        with self._lock:
            self._require(external_id).metadata.update(updates)

    def get_account(self, external_id: str) -> dict[str, Any]:
        with self._lock:
            account = self._require(external_id)
            return {
                "id": account.external_id,
                "email": account.email,
                "email_verified": account.email_verified,
                "mfa_method": account.mfa_method,
                "metadata": dict(account.metadata),
            }

    def verify_password(self, email: str, password: str) -> bool:
        with self._lock:
            account = self._find_by_email(email)
            return account is not None and secrets.compare_digest(account.password, password)

    def generate_password_reset_token(self, email: str) -> str:
        with self._lock:
            account = self._find_by_email(email)
            if account is None:
                raise IdentityProviderUnavailable(f"No account for {email!r}.")
            token = secrets.token_urlsafe(16)
            self._reset_tokens[token] = account.external_id
            return token

    def reset_password(self, token: str, new_password: str) -> None:
        with self._lock:
            external_id = self._reset_tokens.pop(token, None)
            if external_id is None:
                raise IdentityProviderUnavailable("Unknown or used password reset token.")
            self._require(external_id).password = new_password

    def verify_email(self, external_id: str) -> None:
        with self._lock:
            self._require(external_id).email_verified = True

    def is_email_verified(self, external_id: str) -> bool:
        with self._lock:
            return self._require(external_id).email_verified

    def refresh_token(self, refresh_token: str) -> str:
        with self._lock:
            external_id = self._refresh_tokens.pop(refresh_token, None)
            if external_id is None or external_id not in self._accounts:
                raise IdentityProviderUnavailable("Refresh token rejected.")
            new_token = secrets.token_urlsafe(24)
            self._refresh_tokens[new_token] = external_id
            self._accounts[external_id].sessions.add(new_token)
            return new_token

    def issue_refresh_token(self, external_id: str) -> str:
        """Start a session for ``external_id`` (stands in for a provider login)."""
        with self._lock:
            account = self._require(external_id)
            token = secrets.token_urlsafe(24)
            self._refresh_tokens[token] = external_id
            account.sessions.add(token)
            return token

    def logout(self, external_id: str) -> None:
        with self._lock:
            account = self._require(external_id)
            for token in account.sessions:
                self._refresh_tokens.pop(token, None)
            account.sessions.clear()

    def enable_mfa(self, external_id: str, method: str) -> None:
        with self._lock:
            self._require(external_id).mfa_method = method

    def disable_mfa(self, external_id: str) -> None:
        with self._lock:
            self._require(external_id).mfa_method = None

    # ------------------------- inspection -------------------------

    def has_account(self, external_id: str) -> bool:
        return external_id in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)
