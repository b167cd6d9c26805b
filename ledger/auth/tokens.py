"""
JWT token issuing and validation.

Handles:
- Full (session) tokens: user id, email, name, roles; 24h
- Temp tokens: user id, email, purpose (setup|verify); 5 min

The two shapes are disjoint: each carries a ``type`` claim and neither
validator accepts the other's tokens.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import jwt
from flask import request

from core.errors import InternalError, InvalidToken, TempTokenExpiredOrInvalid, TempTokenPurposeMismatch
from core.timestamps import now

from .types import FullClaims, TempClaims, TokenPurpose

logger = logging.getLogger(__name__)

FULL_TOKEN_TYPE = "access"
TEMP_TOKEN_TYPE = "2fa_temp"


def _from_epoch(value) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class TokenIssuer:
    """Signs and verifies tokens with one configured secret."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        full_ttl: timedelta = timedelta(hours=24),
        temp_ttl: timedelta = timedelta(minutes=5),
        clock: Callable = now,
    ):
        if not secret:
            raise ValueError("TokenIssuer requires a non-empty signing secret")
        self._secret = secret
        self._algorithm = algorithm
        self.full_ttl = full_ttl
        self.temp_ttl = temp_ttl
        self._clock = clock

    # =========================================================================
    # Issuing
    # =========================================================================

    def _encode(self, payload: dict) -> str:
        try:
            return jwt.encode(payload, self._secret, algorithm=self._algorithm)
        except Exception as e:
            raise InternalError("token signing failed", cause=e) from e

    def issue_full(self, user_id: int, email: str, name: str, roles: Iterable[str]) -> str:
        """Create a session token."""
        issued = self._clock()
        return self._encode({
            "user_id": user_id,
            "email": email,
            "name": name,
            "roles": list(roles),
            "type": FULL_TOKEN_TYPE,
            "iat": issued,
            "exp": issued + self.full_ttl,
        })

    def issue_temp(self, user_id: int, email: str, purpose: TokenPurpose) -> str:
        """Create a short-lived token usable only by the matching 2FA step."""
        issued = self._clock()
        return self._encode({
            "user_id": user_id,
            "email": email,
            "purpose": TokenPurpose(purpose).value,
            "type": TEMP_TOKEN_TYPE,
            "iat": issued,
            "exp": issued + self.temp_ttl,
        })

    # =========================================================================
    # Validation
    # =========================================================================

    def _decode(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            return None

    def validate_full(self, token: str) -> FullClaims:
        """Decode a session token.

        Raises:
            InvalidToken: bad signature, expired, or not a session token
        """
        payload = self._decode(token or "")
        if not payload or payload.get("type") != FULL_TOKEN_TYPE or "user_id" not in payload:
            raise InvalidToken("session token rejected")
        return FullClaims(
            user_id=payload["user_id"],
            email=payload.get("email", ""),
            name=payload.get("name", ""),
            roles=tuple(payload.get("roles") or ()),
            exp=_from_epoch(payload["exp"]),
            iat=_from_epoch(payload["iat"]),
        )

    def validate_temp(self, token: str, expected_purpose: TokenPurpose) -> TempClaims:
        """Decode a temp token and check it was minted for this step.

        Raises:
            TempTokenExpiredOrInvalid: bad signature, expired, or not a temp token
            TempTokenPurposeMismatch: valid token issued for another step
        """
        payload = self._decode(token or "")
        if not payload or payload.get("type") != TEMP_TOKEN_TYPE or "user_id" not in payload:
            raise TempTokenExpiredOrInvalid("temp token rejected")

        expected = TokenPurpose(expected_purpose)
        if payload.get("purpose") != expected.value:
            raise TempTokenPurposeMismatch(
                f"temp token purpose {payload.get('purpose')!r} used where {expected.value!r} expected"
            )
        return TempClaims(
            user_id=payload["user_id"],
            email=payload.get("email", ""),
            purpose=expected,
            exp=_from_epoch(payload["exp"]),
            iat=_from_epoch(payload["iat"]),
        )


def get_token_from_request() -> Optional[str]:
    """Extract JWT token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None
