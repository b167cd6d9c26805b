"""
Centralized error handling for the ledger auth API.

Error Hierarchy:
- APIError (4xx/502): Expected errors with messages safe to expose to clients
- InternalError (5xx): Unexpected errors - never expose internal details

Each APIError carries a stable ``code`` (useful in logs and tests) and a
``public_message``. Errors that could reveal whether an account, an OAuth
state or a backup code exists share one public message per family, so the
client cannot tell the sub-cases apart.

Usage:
    from core.errors import InvalidCredentials, register_error_handlers

    raise InvalidCredentials()
"""

import logging
import uuid
from typing import Optional

from flask import jsonify

logger = logging.getLogger(__name__)


# =============================================================================
# Base Classes
# =============================================================================

class APIError(Exception):
    """
    Base class for expected API errors.
    ``public_message`` is safe to expose to clients.
    """
    status_code = 400
    code = "bad_request"
    # None: the exception message itself is client-safe
    public_message: Optional[str] = None

    def __init__(self, message: Optional[str] = None, status_code: int = None):
        super().__init__(message or self.public_message or self.code)
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.public_message or str(self), "code": self.code}


class ValidationError(APIError):
    """Request validation failed (400)."""
    status_code = 400
    code = "validation_error"


class AuthenticationError(APIError):
    """Authentication failed (401)."""
    status_code = 401
    code = "unauthorized"


class PermissionDeniedError(APIError):
    """Permission denied (403)."""
    status_code = 403
    code = "forbidden"


# =============================================================================
# Credential Errors
# =============================================================================

class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"
    public_message = "invalid credentials"


class AccountInactive(InvalidCredentials):
    """Folded into InvalidCredentials at the response boundary."""
    code = "account_inactive"


class InvalidToken(AuthenticationError):
    """Full session token missing, malformed, expired or badly signed."""
    code = "invalid_token"
    public_message = "invalid or expired token"


# =============================================================================
# OAuth State Errors
# =============================================================================

class OAuthStateError(APIError):
    status_code = 400
    code = "oauth_state_invalid"
    public_message = "invalid oauth state"


class StateNotFound(OAuthStateError):
    code = "state_not_found"


class StateExpired(OAuthStateError):
    code = "state_expired"


class StateAlreadyUsed(OAuthStateError):
    code = "state_already_used"


class FingerprintMismatch(OAuthStateError):
    code = "fingerprint_mismatch"


class ProviderError(APIError):
    status_code = 502
    code = "provider_error"
    public_message = "oauth provider error"


class ProviderExchangeFailed(ProviderError):
    code = "provider_exchange_failed"


class ProviderProfileMissingEmail(ProviderError):
    code = "provider_profile_missing_email"


# =============================================================================
# 2FA Errors
# =============================================================================

class TOTPSetupNotInitiated(APIError):
    status_code = 400
    code = "totp_setup_not_initiated"
    public_message = "2FA setup not initiated"


class TOTPAlreadyEnabled(APIError):
    status_code = 400
    code = "totp_already_enabled"
    public_message = "2FA is already enabled"


class TOTPNotEnabled(APIError):
    status_code = 400
    code = "totp_not_enabled"
    public_message = "2FA must be enabled to generate backup codes"


class InvalidTOTPCode(AuthenticationError):
    code = "invalid_totp_code"
    public_message = "invalid TOTP code"


class InvalidBackupCode(AuthenticationError):
    code = "invalid_backup_code"
    public_message = "invalid backup code"


class TempTokenError(AuthenticationError):
    code = "temp_token_invalid"
    public_message = "invalid or expired 2FA token"


class TempTokenExpiredOrInvalid(TempTokenError):
    code = "temp_token_expired_or_invalid"


class TempTokenPurposeMismatch(TempTokenError):
    code = "temp_token_purpose_mismatch"


# =============================================================================
# Internal Error (5xx - Never Expose)
# =============================================================================

class InternalError(Exception):
    """
    Wraps storage or signing failures (HTTP 500).
    Message should NEVER be exposed to clients.
    """

    def __init__(self, message: str = "internal error", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


# =============================================================================
# Flask Error Handlers
# =============================================================================

def register_error_handlers(app):
    """
    Register Flask error handlers for the APIError hierarchy.

    Call this in the app factory:
        from core.errors import register_error_handlers
        register_error_handlers(app)
    """

    @app.errorhandler(APIError)
    def handle_api_error(e):
        """Handle all APIError subclasses."""
        error_id = str(uuid.uuid4())[:8]
        logger.warning(f"API error [{e.code}]: {e}", extra={'error_id': error_id})
        body = e.to_dict()
        body["error_id"] = error_id
        return jsonify(body), e.status_code

    @app.errorhandler(InternalError)
    def handle_wrapped_internal_error(e):
        error_id = str(uuid.uuid4())[:8]
        logger.error(
            f"Internal error: {e}",
            exc_info=e.cause or e,
            extra={'error_id': error_id},
        )
        return jsonify({
            "error": "Internal server error",
            "error_id": error_id
        }), 500

    @app.errorhandler(500)
    def handle_internal_error(e):
        """Handle unexpected 500 errors."""
        error_id = str(uuid.uuid4())[:8]
        logger.exception("Internal server error", extra={'error_id': error_id})
        return jsonify({
            "error": "Internal server error",
            "error_id": error_id
        }), 500
