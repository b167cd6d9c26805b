"""Shared pytest fixtures for the ledger auth tests."""
import os
import sys
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import pytest

# Add project root to path
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)

# ---------------------------------------------------------------------------
# Deterministic test environment, set BEFORE any ledger module imports.
# ---------------------------------------------------------------------------
os.environ.setdefault('TESTING', 'true')
os.environ.setdefault('JWT_SECRET', 'test-jwt-secret-for-pytest-32chars!')
os.environ.setdefault('LOG_FORMAT', 'text')

from core.errors import ProviderExchangeFailed  # noqa: E402
from ledger.auth.types import ProviderProfile  # noqa: E402


# =============================================================================
# Test Doubles
# =============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class StubProvider:
    """OAuth provider that never leaves the process."""

    name = "google"

    def __init__(self):
        self.profile = ProviderProfile(id="g-123", email="bob@example.com", name="Bob")
        self.exchanged = []
        self.fail_exchange = False

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.example.test/auth?{urlencode({'state': state})}"

    def exchange_code(self, code: str) -> str:
        self.exchanged.append(code)
        if self.fail_exchange:
            raise ProviderExchangeFailed("stub exchange failure")
        return f"access-{code}"

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        return self.profile


# =============================================================================
# Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def _reset_singletons():
    """Fresh settings, DB singleton and audit log for every test."""
    from config.settings import get_settings
    from core.event_logger import clear_event_log

    get_settings.cache_clear()
    clear_event_log()
    yield
    from core.db import DatabaseManager
    DatabaseManager.reset()
    get_settings.cache_clear()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db(tmp_path):
    """File-backed SQLite database with the auth schema."""
    from core.db import DatabaseManager
    from ledger.auth.schema import initialize

    manager = DatabaseManager(db_path=tmp_path / "auth.db")
    initialize(manager)
    yield manager
    manager.close()


@pytest.fixture
def cipher():
    from ledger.auth.encryption import SecretCipher
    return SecretCipher(fallback_secret=os.environ['JWT_SECRET'])


@pytest.fixture
def users(db, cipher):
    from ledger.auth.repositories import UserRepository
    return UserRepository(db, cipher)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return StubProvider()


# =============================================================================
# Flask API Test Client Fixtures
# =============================================================================

@pytest.fixture
def app(tmp_path, provider):
    """Create Flask app for testing via the application factory."""
    from ledger.app import create_app

    return create_app(config={
        'TESTING': True,
        'DB_PATH': tmp_path / "app.db",
        'OAUTH_PROVIDER': provider,
    })


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def services(app):
    from ledger.services import EXTENSION_KEY
    return app.extensions[EXTENSION_KEY]


@pytest.fixture
def make_user(services):
    """Factory creating users in the app database.

    ``totp_secret`` stores a (pending) secret; ``totp_enabled`` also
    confirms it.
    """
    from ledger.auth.identity import create_user

    def _make(
        email="alice@example.com",
        password="Secret123!",
        name="Alice",
        roles=("USER",),
        is_active=True,
        totp_secret=None,
        totp_enabled=False,
    ):
        user = create_user(
            services.users,
            email=email,
            password=password,
            name=name,
            roles=roles,
            is_active=is_active,
        )
        if totp_secret:
            services.users.set_totp_secret(user.id, totp_secret)
            if totp_enabled:
                services.users.enable_totp(user.id)
        return services.users.find_by_id(user.id)

    return _make


@pytest.fixture
def bearer():
    """Build an Authorization header for a token."""
    def _bearer(token: str) -> dict:
        return {'Authorization': f'Bearer {token}'}
    return _bearer
