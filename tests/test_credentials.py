"""Tests for credential verification, the external delegate and the Google client."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.errors import (
    AccountInactive,
    InvalidCredentials,
    ProviderExchangeFailed,
    ProviderProfileMissingEmail,
)
from ledger.auth.credentials import CredentialVerifier, ExternalAuthClient
from ledger.auth.passwords import hash_password, validate_password_strength, verify_password
from ledger.auth.provider import GoogleOAuthClient
from ledger.auth.types import User


def _response(status=200, json_data=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status
    if json_error:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}")
    return resp


def _user(**overrides):
    fields = dict(id=1, email="alice@example.com", name="Alice", password_hash=hash_password("Secret123!"))
    fields.update(overrides)
    return User(**fields)


class TestPasswords:
    def test_hash_is_salted(self):
        assert hash_password("Secret123!") != hash_password("Secret123!")

    def test_verify(self):
        h = hash_password("Secret123!")
        assert verify_password("Secret123!", h) is True
        assert verify_password("secret123!", h) is False

    def test_empty_hash_never_matches(self):
        assert verify_password("", "") is False

    @pytest.mark.parametrize("password,fragment", [
        ("Sh0rt!", "at least 8"),
        ("lowercase1!", "uppercase"),
        ("UPPERCASE1!", "lowercase"),
        ("NoDigits!!", "digit"),
        ("NoSpecial12", "special"),
    ])
    def test_policy_rejections(self, password, fragment):
        valid, message = validate_password_strength(password)
        assert valid is False
        assert fragment in message

    def test_policy_accepts(self):
        assert validate_password_strength("Secret123!") == (True, "")


class TestCredentialVerifier:
    def test_local_password_ok(self):
        user = _user()
        assert CredentialVerifier().verify(user, user.email, "Secret123!") is user

    def test_wrong_password(self):
        with pytest.raises(InvalidCredentials):
            CredentialVerifier().verify(_user(), "alice@example.com", "nope")

    def test_unknown_user(self):
        with pytest.raises(InvalidCredentials):
            CredentialVerifier().verify(None, "ghost@example.com", "Secret123!")

    def test_inactive_user(self):
        with pytest.raises(AccountInactive):
            CredentialVerifier().verify(_user(is_active=False), "alice@example.com", "Secret123!")

    def test_failures_indistinguishable_to_client(self):
        bodies = []
        for user, password in ((None, "x"), (_user(), "x"), (_user(is_active=False), "Secret123!")):
            with pytest.raises(InvalidCredentials) as exc:
                CredentialVerifier().verify(user, "alice@example.com", password)
            bodies.append((exc.value.status_code, exc.value.to_dict()["error"]))
        assert set(bodies) == {(401, "invalid credentials")}

    @pytest.mark.parametrize("user", [None, _user(is_active=False)])
    def test_rejection_without_account_still_hashes(self, user):
        with patch("ledger.auth.credentials.verify_password", wraps=verify_password) as check:
            with pytest.raises(InvalidCredentials):
                CredentialVerifier().verify(user, "alice@example.com", "Secret123!")
        check.assert_called_once()

    def test_delegate_affirms_without_local_hash(self):
        delegate = MagicMock()
        delegate.authenticate.return_value = True
        user = _user(password_hash=None)
        assert CredentialVerifier(delegate).verify(user, user.email, "whatever") is user

    def test_delegate_refusal_falls_back_to_local(self):
        delegate = MagicMock()
        delegate.authenticate.return_value = False
        user = _user()
        assert CredentialVerifier(delegate).verify(user, user.email, "Secret123!") is user
        with pytest.raises(InvalidCredentials):
            CredentialVerifier(delegate).verify(user, user.email, "wrong")

    def test_delegate_not_consulted_for_inactive(self):
        delegate = MagicMock()
        with pytest.raises(InvalidCredentials):
            CredentialVerifier(delegate).verify(_user(is_active=False), "alice@example.com", "x")
        delegate.authenticate.assert_not_called()


class TestExternalAuthClient:
    def _client(self, response=None, error=None):
        session = MagicMock()
        if error is not None:
            session.post.side_effect = error
        else:
            session.post.return_value = response
        return ExternalAuthClient("https://auth.example.test/verify", timeout=2, session=session), session

    def test_posts_credentials(self):
        client, session = self._client(_response(200, {"authenticated": True}))
        assert client.authenticate("a@x.io", "pw") is True
        session.post.assert_called_once_with(
            "https://auth.example.test/verify",
            json={"email": "a@x.io", "password": "pw"},
            timeout=2,
        )

    def test_bare_200_affirms(self):
        client, _ = self._client(_response(200, json_error=True))
        assert client.authenticate("a@x.io", "pw") is True

    def test_explicit_false_body(self):
        client, _ = self._client(_response(200, {"success": False}))
        assert client.authenticate("a@x.io", "pw") is False

    def test_non_200(self):
        client, _ = self._client(_response(401, {"error": "nope"}))
        assert client.authenticate("a@x.io", "pw") is False

    def test_network_error(self):
        client, _ = self._client(error=requests.ConnectionError("down"))
        assert client.authenticate("a@x.io", "pw") is False


class TestGoogleOAuthClient:
    def _client(self):
        session = MagicMock()
        client = GoogleOAuthClient(
            "client-id", "client-secret", "https://api.example.test/auth/google/callback",
            session=session,
        )
        return client, session

    def test_authorization_url(self):
        client, _ = self._client()
        url = client.authorization_url("state123")
        assert url.startswith("https://accounts.google.com/")
        assert "state=state123" in url
        assert "client_id=client-id" in url
        assert "response_type=code" in url

    def test_exchange_code(self):
        client, session = self._client()
        session.post.return_value = _response(200, {"access_token": "at-1"})
        assert client.exchange_code("code-1") == "at-1"
        assert session.post.call_args.kwargs["data"]["grant_type"] == "authorization_code"

    def test_exchange_http_error(self):
        client, session = self._client()
        session.post.return_value = _response(400, {"error": "invalid_grant"})
        with pytest.raises(ProviderExchangeFailed):
            client.exchange_code("bad")

    def test_exchange_without_token(self):
        client, session = self._client()
        session.post.return_value = _response(200, {})
        with pytest.raises(ProviderExchangeFailed):
            client.exchange_code("code-1")

    def test_fetch_profile(self):
        client, session = self._client()
        session.get.return_value = _response(200, {"id": "g-1", "email": "Bob@Example.com", "name": "Bob"})
        profile = client.fetch_profile("at-1")
        assert (profile.id, profile.email, profile.name) == ("g-1", "bob@example.com", "Bob")
        assert session.get.call_args.kwargs["headers"] == {"Authorization": "Bearer at-1"}

    def test_null_id_is_empty(self):
        client, session = self._client()
        session.get.return_value = _response(200, {"id": None, "email": "bob@example.com"})
        assert client.fetch_profile("at-1").id == ""

    def test_profile_without_email(self):
        client, session = self._client()
        session.get.return_value = _response(200, {"id": "g-1"})
        with pytest.raises(ProviderProfileMissingEmail):
            client.fetch_profile("at-1")

    def test_profile_network_error(self):
        client, session = self._client()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(ProviderExchangeFailed):
            client.fetch_profile("at-1")
