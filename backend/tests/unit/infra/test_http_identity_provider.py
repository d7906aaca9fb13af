"""Unit tests for HttpIdentityProvider with HTTP mocked by ``responses``."""

from __future__ import annotations

import json

import pytest
import requests
import responses
from identity_service.infra.idp.http_identity_provider import HttpIdentityProvider
from identity_service.services._shared.ports import IdentityProviderUnavailable

BASE = "https://idp.test/api"


@pytest.fixture
def gateway():
    return HttpIdentityProvider(base_url=f"{BASE}/", api_token="svc-token", timeout=0.5)


def _sent_json(call) -> dict:
    return json.loads(call.request.body)


class TestAccounts:
    @responses.activate
    def test_create_account_posts_credentials_and_metadata(self, gateway):
        """
        GIVEN a provider that accepts the account
        WHEN create_account is called
        THEN the returned id is the provider's and the bearer token is sent.
        """
        responses.add(responses.POST, f"{BASE}/users", json={"id": "idp-42"}, status=201)

        external_id = gateway.create_account("a@b.com", "password1", {"domain": "customer"})

        assert external_id == "idp-42"
        [call] = responses.calls
        assert call.request.headers["Authorization"] == "Bearer svc-token"
        assert _sent_json(call) == {
            "email": "a@b.com",
            "password": "password1",
            "metadata": {"domain": "customer"},
        }

    @responses.activate
    def test_create_account_without_id_is_rejected(self, gateway):
        responses.add(responses.POST, f"{BASE}/users", json={"status": "ok"}, status=201)

        with pytest.raises(IdentityProviderUnavailable):
            gateway.create_account("a@b.com", "password1", {})

    @responses.activate
    def test_delete_unknown_account_is_a_no_op(self, gateway):
        responses.add(responses.DELETE, f"{BASE}/users/idp-404", status=404)

        gateway.delete_account("idp-404")

        assert len(responses.calls) == 1

    @responses.activate
    def test_get_account_returns_body(self, gateway):
        responses.add(
            responses.GET,
            f"{BASE}/users/idp-1",
            json={"id": "idp-1", "email_verified": True},
        )

        assert gateway.get_account("idp-1")["id"] == "idp-1"
        assert gateway.is_email_verified("idp-1") is True

    @responses.activate
    def test_update_account_sends_patch(self, gateway):
        responses.add(responses.PATCH, f"{BASE}/users/idp-1", status=204)

        gateway.update_account("idp-1", {"first_name": "Jane"})

        assert _sent_json(responses.calls[0]) == {"first_name": "Jane"}


class TestCredentialsAndSessions:
    @pytest.mark.parametrize(("valid", "expected"), [(True, True), (False, False)])
    @responses.activate
    def test_verify_password(self, gateway, valid, expected):
        responses.add(responses.POST, f"{BASE}/auth/verify", json={"valid": valid})

        assert gateway.verify_password("a@b.com", "password1") is expected

    @responses.activate
    def test_password_reset_round(self, gateway):
        responses.add(responses.POST, f"{BASE}/password-resets", json={"token": "tok-1"})
        responses.add(responses.POST, f"{BASE}/password-resets/tok-1", status=204)

        token = gateway.generate_password_reset_token("a@b.com")
        gateway.reset_password(token, "new-password")

        assert token == "tok-1"
        assert _sent_json(responses.calls[1]) == {"password": "new-password"}

    @responses.activate
    def test_refresh_token(self, gateway):
        responses.add(
            responses.POST, f"{BASE}/tokens/refresh", json={"refresh_token": "rt-2"}
        )

        assert gateway.refresh_token("rt-1") == "rt-2"

    @responses.activate
    def test_mfa_toggle(self, gateway):
        responses.add(responses.PUT, f"{BASE}/users/idp-1/mfa", status=204)
        responses.add(responses.DELETE, f"{BASE}/users/idp-1/mfa", status=204)

        gateway.enable_mfa("idp-1", "totp")
        gateway.disable_mfa("idp-1")

        assert _sent_json(responses.calls[0]) == {"method": "totp"}


class TestFailures:
    @responses.activate
    def test_server_error_is_unavailable(self, gateway):
        responses.add(responses.POST, f"{BASE}/users", status=500)

        with pytest.raises(IdentityProviderUnavailable, match="HTTP 500"):
            gateway.create_account("a@b.com", "password1", {})

    @responses.activate
    def test_timeout_is_unavailable(self, gateway):
        responses.add(responses.POST, f"{BASE}/users", body=requests.Timeout("slow"))

        with pytest.raises(IdentityProviderUnavailable, match="timed out") as excinfo:
            gateway.create_account("a@b.com", "password1", {})

        assert isinstance(excinfo.value.__cause__, requests.Timeout)

    @responses.activate
    def test_connection_error_is_unavailable(self, gateway):
        responses.add(
            responses.DELETE,
            f"{BASE}/users/idp-1",
            body=requests.ConnectionError("refused"),
        )

        with pytest.raises(IdentityProviderUnavailable):
            gateway.delete_account("idp-1")

    @responses.activate
    def test_invalid_json_is_unavailable(self, gateway):
        responses.add(
            responses.POST,
            f"{BASE}/users",
            body="<html>oops</html>",
            status=200,
            content_type="text/html",
        )

        with pytest.raises(IdentityProviderUnavailable, match="invalid JSON"):
            gateway.create_account("a@b.com", "password1", {})
