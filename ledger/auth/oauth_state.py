"""
OAuth state tokens: CSRF and replay protection for the provider callback.

A state is bound to the issuing client by SHA-256 hashes of its IP and
User-Agent, expires after a fixed TTL, and can be consumed once.
"""
import hashlib
import logging
import secrets
import uuid
from dataclasses import replace
from datetime import timedelta
from typing import Callable

from core.errors import FingerprintMismatch, StateAlreadyUsed, StateExpired, StateNotFound
from core.timestamps import now

from .provider import OAuthProvider
from .repositories import OauthStateRepository
from .types import OauthState

logger = logging.getLogger(__name__)


def fingerprint(value: str) -> str:
    """One-way hash of a client attribute; raw IPs and UAs are never stored."""
    return hashlib.sha256((value or "").encode()).hexdigest()


class OAuthStateManager:

    def __init__(
        self,
        repo: OauthStateRepository,
        provider: OAuthProvider,
        ttl_minutes: int = 10,
        clock: Callable = now,
    ):
        self._repo = repo
        self._provider = provider
        self.ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock

    def issue(self, client_ip: str, user_agent: str) -> str:
        """Persist a fresh state and return the provider's authorization URL."""
        issued_at = self._clock()
        record = OauthState(
            id=str(uuid.uuid4()),
            state=secrets.token_hex(32),
            provider=self._provider.name,
            ip_hash=fingerprint(client_ip),
            user_agent_hash=fingerprint(user_agent),
            created_at=issued_at,
            expires_at=issued_at + self.ttl,
        )
        self._repo.save(record)
        return self._provider.authorization_url(record.state)

    def consume(self, state: str, client_ip: str, user_agent: str) -> OauthState:
        """Validate a callback's state and mark it used.

        Checks run in a fixed order: existence, expiry, prior use, then
        fingerprints. A fingerprint mismatch leaves the state unused.
        The final mark-used is conditional, so of several concurrent
        callbacks exactly one succeeds.

        Raises:
            StateNotFound, StateExpired, StateAlreadyUsed, FingerprintMismatch
        """
        if not state:
            raise StateNotFound("empty state parameter")

        record = self._repo.find_by_state(state)
        if record is None:
            raise StateNotFound("state not found")

        current = self._clock()
        if current > record.expires_at:
            raise StateExpired(f"state {record.id} expired at {record.expires_at.isoformat()}")
        if record.used_at is not None:
            raise StateAlreadyUsed(f"state {record.id} already used")

        # An empty stored hash means the state was never bound to that attribute
        if record.ip_hash and record.ip_hash != fingerprint(client_ip):
            raise FingerprintMismatch(f"state {record.id} IP fingerprint mismatch")
        if record.user_agent_hash and record.user_agent_hash != fingerprint(user_agent):
            raise FingerprintMismatch(f"state {record.id} user-agent fingerprint mismatch")

        if not self._repo.mark_used(record.id, current):
            raise StateAlreadyUsed(f"state {record.id} consumed concurrently")

        logger.debug(f"OAuth state {record.id} consumed")
        return replace(record, used_at=current)
