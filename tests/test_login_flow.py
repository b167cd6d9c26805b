"""End-to-end tests for the password login state machine and OAuth callback."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pyotp
import pytest

from core.errors import InternalError
from ledger.auth.oauth_state import OAuthStateManager
from ledger.auth.repositories import OauthStateRepository
from ledger.auth.types import ProviderProfile


def _login(client, email="alice@example.com", password="Secret123!"):
    return client.post('/login', json={'email': email, 'password': password})


class TestPasswordLogin:
    def test_no_secret_requires_setup(self, client, make_user):
        make_user()
        resp = _login(client)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["requires_2fa"] is True
        assert body["purpose"] == "setup"
        assert body["temp_token"]
        assert "token" not in body

    def test_enabled_requires_verify(self, client, make_user):
        make_user(totp_secret=pyotp.random_base32(), totp_enabled=True)
        body = _login(client).get_json()
        assert body["requires_2fa"] is True
        assert body["purpose"] == "verify"

    def test_pending_secret_no_enforcement_gets_full_token(self, client, make_user, services):
        make_user(totp_secret=pyotp.random_base32())
        body = _login(client).get_json()
        assert set(body) == {"token"}
        assert services.tokens.validate_full(body["token"]).email == "alice@example.com"

    def test_soft_enforcement_flags_setup(self, client, make_user, services):
        admin = make_user(email="root@example.com", roles=("ADMIN",))
        services.policy.update(True, admin.id)
        make_user(totp_secret=pyotp.random_base32())

        body = _login(client).get_json()
        assert body["token"]
        assert body["requires_2fa_setup"] is True

    def test_email_is_case_insensitive(self, client, make_user):
        make_user(totp_secret=pyotp.random_base32())
        assert _login(client, email="  Alice@Example.COM ").status_code == 200

    def test_failures_are_uniform(self, client, make_user):
        make_user()
        make_user(email="inactive@example.com", is_active=False)

        responses = [
            _login(client, password="WrongPass1!"),
            _login(client, email="ghost@example.com"),
            _login(client, email="inactive@example.com"),
        ]
        assert {r.status_code for r in responses} == {401}
        assert {r.get_json()["error"] for r in responses} == {"invalid credentials"}

    @pytest.mark.parametrize("body", [None, {}, {"email": "a@x.io"}, {"email": 1, "password": "x"}])
    def test_malformed_body(self, client, body):
        resp = client.post('/login', json=body) if body is not None else client.post('/login', data="x")
        assert resp.status_code == 400

    def test_external_delegate_affirms(self, tmp_path, provider):
        from ledger.app import create_app
        from ledger.auth.identity import create_user
        from ledger.services import get_services

        delegate = MagicMock()
        delegate.authenticate.return_value = True
        app = create_app({
            'TESTING': True,
            'DB_PATH': tmp_path / "delegate.db",
            'OAUTH_PROVIDER': provider,
            'AUTH_DELEGATE': delegate,
        })
        with app.app_context():
            services = get_services()
            user = create_user(services.users, "erin@example.com", "Secret123!", name="Erin")
            services.users.set_totp_secret(user.id, pyotp.random_base32())

        resp = app.test_client().post('/login', json={'email': 'erin@example.com', 'password': 'not-the-local-one'})
        assert resp.status_code == 200
        assert "token" in resp.get_json()
        delegate.authenticate.assert_called_once_with("erin@example.com", "not-the-local-one")


class TestAliceScenario:
    """Enroll from a setup temp token, then log in through the verify step."""

    def test_full_enrollment_and_verified_login(self, client, make_user, bearer):
        make_user(email="alice@example.com", password="Secret123!")

        first = _login(client).get_json()
        assert first == {"requires_2fa": True, "temp_token": first["temp_token"], "purpose": "setup"}

        setup = client.post('/2fa/setup', headers=bearer(first["temp_token"]))
        assert setup.status_code == 200
        secret = setup.get_json()["secret"]

        confirm = client.post(
            '/2fa/setup/verify',
            json={'code': pyotp.TOTP(secret).now()},
            headers=bearer(first["temp_token"]),
        )
        assert confirm.status_code == 200
        assert confirm.get_json()["token"]

        second = _login(client).get_json()
        assert second["requires_2fa"] is True
        assert second["purpose"] == "verify"

        verified = client.post('/2fa/verify', json={
            'temp_token': second["temp_token"],
            'code': pyotp.TOTP(secret).now(),
        })
        assert verified.status_code == 200
        assert verified.get_json()["token"]

    def test_setup_token_cannot_complete_verify(self, client, make_user):
        make_user()
        temp = _login(client).get_json()["temp_token"]
        resp = client.post('/2fa/verify', json={'temp_token': temp, 'code': '123456'})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "invalid or expired 2FA token"

    def test_wrong_code_at_verify(self, client, make_user):
        secret = pyotp.random_base32()
        make_user(totp_secret=secret, totp_enabled=True)
        totp = pyotp.TOTP(secret)
        window = {totp.at(totp.timecode(datetime.now(timezone.utc)) * 30 + s) for s in (-30, 0, 30, 60)}
        wrong = next(c for c in ("000000", "111111", "222222") if c not in window)

        temp = _login(client).get_json()["temp_token"]
        resp = client.post('/2fa/verify', json={'temp_token': temp, 'code': wrong})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "invalid TOTP code"


class TestOAuthFlow:
    def _start(self, client):
        resp = client.get('/auth/google/login', headers={'User-Agent': 'pytest-browser'})
        assert resp.status_code == 302
        return parse_qs(urlparse(resp.headers['Location']).query)["state"][0]

    def _callback(self, client, state, code="auth-code", user_agent='pytest-browser'):
        resp = client.get(
            '/auth/google/callback',
            query_string={'code': code, 'state': state},
            headers={'User-Agent': user_agent},
        )
        assert resp.status_code == 302
        location = urlparse(resp.headers['Location'])
        return location.path, parse_qs(location.query)

    def test_new_user_created(self, client, services):
        path, params = self._callback(client, self._start(client))
        assert path == "/oauth/callback"
        claims = services.tokens.validate_full(params["token"][0])
        assert claims.email == "bob@example.com"
        assert claims.roles == ("USER",)

        user = services.users.find_by_google_id("g-123")
        assert user is not None and user.is_active

    def test_existing_email_linked_and_reactivated(self, client, services, make_user):
        existing = make_user(email="bob@example.com", is_active=False)
        path, params = self._callback(client, self._start(client))
        assert path == "/oauth/callback"

        linked = services.users.find_by_id(existing.id)
        assert linked.google_id == "g-123"
        assert linked.is_active is True
        assert services.tokens.validate_full(params["token"][0]).user_id == existing.id

    def test_replay_rejected(self, client, provider):
        state = self._start(client)
        self._callback(client, state)
        path, params = self._callback(client, state)
        assert path == "/login"
        assert params["error"] == ["invalid oauth state"]
        assert len(provider.exchanged) == 1

    def test_fingerprint_mismatch_then_retry(self, client, provider):
        state = self._start(client)
        path, params = self._callback(client, state, user_agent="other-browser")
        assert path == "/login"
        assert provider.exchanged == []

        path, _ = self._callback(client, state)
        assert path == "/oauth/callback"

    def test_expired_state_never_reaches_exchange(self, client, services, provider, clock):
        services.orchestrator.oauth_states = OAuthStateManager(
            OauthStateRepository(services.db), provider, ttl_minutes=10, clock=clock
        )
        state = self._start(client)
        clock.advance(minutes=11)

        path, params = self._callback(client, state)
        assert path == "/login"
        assert params["error"] == ["invalid oauth state"]
        assert provider.exchanged == []

    def test_provider_failure(self, client, provider):
        provider.fail_exchange = True
        path, params = self._callback(client, self._start(client))
        assert path == "/login"
        assert params["error"] == ["oauth provider error"]

    def test_provider_error_param(self, client, provider):
        resp = client.get('/auth/google/callback', query_string={'error': 'access_denied'})
        assert resp.status_code == 302
        assert "/login?" in resp.headers['Location']
        assert provider.exchanged == []

    def test_redirect_targets_frontend(self, client):
        resp = client.get('/auth/google/callback', query_string={'state': 'nope', 'code': 'x'})
        assert resp.headers['Location'].startswith("http://localhost:5173/login?")

    def test_profile_without_id_matches_by_email_only(self, client, services, provider, make_user):
        first = make_user(email="a1@example.com")
        second = make_user(email="a2@example.com")

        for user in (first, second):
            provider.profile = ProviderProfile(id="", email=user.email, name="")
            path, params = self._callback(client, self._start(client))
            assert path == "/oauth/callback"
            assert services.tokens.validate_full(params["token"][0]).user_id == user.id
            assert services.users.find_by_id(user.id).google_id is None

    def test_storage_failure_redirects(self, client, services):
        state = self._start(client)
        with patch.object(services.users, "find_by_google_id", side_effect=InternalError("db down")):
            path, params = self._callback(client, state)
        assert path == "/login"
        assert params["error"] == ["login failed"]
