"""
Credential verification: external delegate first, local hash second.

Every failure path collapses to ``InvalidCredentials`` so callers cannot
tell a missing account from a wrong password.
"""
import logging
import secrets
from typing import Optional, Protocol

import requests

from core.errors import AccountInactive, InvalidCredentials

from .passwords import hash_password, verify_password
from .types import User

logger = logging.getLogger(__name__)

# Compared against when there is no usable account, so every rejection costs one hash check
_UNMATCHABLE_HASH = hash_password(secrets.token_hex(16))


class ExternalAuthDelegate(Protocol):
    """Anything that can affirm an (email, password) pair."""

    def authenticate(self, email: str, password: str) -> bool:
        ...


class ExternalAuthClient:
    """POSTs credentials to an external auth service.

    A 200 response affirms unless its JSON body explicitly carries a falsy
    ``authenticated`` or ``success`` field. Network errors and non-200
    responses are "not affirmed", never raised.
    """

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def authenticate(self, email: str, password: str) -> bool:
        try:
            resp = self._session.post(
                self.url,
                json={"email": email, "password": password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"External auth request failed: {e}")
            return False

        if resp.status_code != 200:
            logger.info(f"External auth rejected {email} (HTTP {resp.status_code})")
            return False

        try:
            body = resp.json()
        except ValueError:
            return True
        if not isinstance(body, dict):
            return True
        for key in ("authenticated", "success"):
            if key in body:
                return bool(body[key])
        return True


class CredentialVerifier:
    """Checks a presented password for a resolved user."""

    def __init__(self, delegate: Optional[ExternalAuthDelegate] = None):
        self._delegate = delegate

    def verify(self, user: Optional[User], email: str, password: str) -> User:
        """Return the user if the credentials hold.

        Raises:
            InvalidCredentials: unknown email or wrong password
            AccountInactive: account disabled (same public message)
        """
        if user is None or not user.is_active:
            verify_password(password, _UNMATCHABLE_HASH)
        if user is None:
            raise InvalidCredentials(f"no account for {email}")
        if not user.is_active:
            raise AccountInactive(f"account {user.id} is inactive")

        if self._delegate is not None and self._delegate.authenticate(email, password):
            return user

        if not verify_password(password, user.password_hash or ""):
            raise InvalidCredentials(f"password mismatch for user {user.id}")
        return user
