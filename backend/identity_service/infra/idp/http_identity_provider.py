"""HTTP adapter for an identity provider exposing a JSON REST API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests

from identity_service.services._shared.ports import (
    IdentityProviderGateway,
    IdentityProviderUnavailable,
)

log = logging.getLogger(__name__)


class HttpIdentityProvider(IdentityProviderGateway):
    """
    Identity provider gateway over HTTP.

    Every call carries a bearer token and an explicit timeout. Transport
    errors, timeouts and non-2xx responses raise
    :class:`IdentityProviderUnavailable`; the only tolerated error status is
    ``404`` on account deletion.

    :param base_url: Provider API root, e.g. ``https://idp.internal/api``.
    :param api_token: Service token sent as ``Authorization: Bearer``.
    :param timeout: Seconds allowed per request (connect and read).
    :param session: Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_token: str | None = None,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"

    # ------------------------- transport -------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> requests.Response | None:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, json=json, timeout=self.timeout)
        except requests.Timeout as exc:
            raise IdentityProviderUnavailable(
                f"{method} {path} timed out after {self.timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise IdentityProviderUnavailable(f"{method} {path} failed: {exc}") from exc

        if allow_not_found and resp.status_code == 404:
            return None
        if not resp.ok:
            log.warning("Identity provider answered %s to %s %s", resp.status_code, method, path)
            raise IdentityProviderUnavailable(
                f"{method} {path} returned HTTP {resp.status_code}"
            )
        return resp

    @staticmethod
    def _json(resp: requests.Response | None) -> dict[str, Any]:
        if resp is None or not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as exc:
            raise IdentityProviderUnavailable("Identity provider returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise IdentityProviderUnavailable("Identity provider returned a non-object body")
        return data

    def _field(self, resp: requests.Response | None, name: str) -> Any:
        data = self._json(resp)
        if name not in data:
            raise IdentityProviderUnavailable(f"Identity provider response lacks {name!r}")
        return data[name]

    # -------------------------- accounts --------------------------

    def create_account(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        resp = self._request(
            "POST",
            "/users",
            json={"email": email, "password": password, "metadata": dict(metadata)},
        )
        return str(self._field(resp, "id"))

    def delete_account(self, external_id: str) -> None:
        resp = self._request("DELETE", f"/users/{external_id}", allow_not_found=True)
        if resp is None:
            log.info("Identity provider account %s already absent", external_id)

    def update_account(self, external_id: str, updates: Mapping[str, Any]) -> None:
        self._request("PATCH", f"/users/{external_id}", json=dict(updates))

    def get_account(self, external_id: str) -> dict[str, Any]:
        return self._json(self._request("GET", f"/users/{external_id}"))

    # ----------------------- credentials -----------------------

    def verify_password(self, email: str, password: str) -> bool:
        resp = self._request("POST", "/auth/verify", json={"email": email, "password": password})
        return bool(self._json(resp).get("valid", False))

    def generate_password_reset_token(self, email: str) -> str:
        resp = self._request("POST", "/password-resets", json={"email": email})
        return str(self._field(resp, "token"))

    def reset_password(self, token: str, new_password: str) -> None:
        self._request("POST", f"/password-resets/{token}", json={"password": new_password})

    def verify_email(self, external_id: str) -> None:
        self._request("POST", f"/users/{external_id}/verify-email")

    def is_email_verified(self, external_id: str) -> bool:
        return bool(self.get_account(external_id).get("email_verified", False))

    # ------------------------- sessions -------------------------

    def refresh_token(self, refresh_token: str) -> str:
        resp = self._request("POST", "/tokens/refresh", json={"refresh_token": refresh_token})
        return str(self._field(resp, "refresh_token"))

    def logout(self, external_id: str) -> None:
        self._request("POST", f"/users/{external_id}/logout")

    def enable_mfa(self, external_id: str, method: str) -> None:
        self._request("PUT", f"/users/{external_id}/mfa", json={"method": method})

    def disable_mfa(self, external_id: str) -> None:
        self._request("DELETE", f"/users/{external_id}/mfa")
