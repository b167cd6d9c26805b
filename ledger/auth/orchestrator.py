"""
Login orchestration: password login, OAuth callback and the 2FA steps.

Every branch ends in exactly one of: a full token, a purpose-scoped temp
token, or a typed ``APIError``. Security events are recorded through
``log_event``; plaintext secrets never are.
"""
import logging
from typing import Optional

from core.errors import (
    InvalidCredentials,
    InvalidToken,
    InvalidTOTPCode,
    TOTPAlreadyEnabled,
    TOTPNotEnabled,
    TOTPSetupNotInitiated,
)
from core.event_logger import log_event

from .backup_codes import BackupCodeVault
from .credentials import CredentialVerifier
from .mfa_policy import MFAPolicyStore
from .oauth_state import OAuthStateManager
from .provider import OAuthProvider
from .repositories import UserRepository
from .tokens import TokenIssuer
from .totp import TOTPEngine
from .types import LoginResult, TokenPurpose, TOTPProvisioning, User

logger = logging.getLogger(__name__)


class LoginOrchestrator:
    """Drives every transition of the login state machine."""

    def __init__(
        self,
        users: UserRepository,
        credentials: CredentialVerifier,
        tokens: TokenIssuer,
        totp: TOTPEngine,
        backup_codes: BackupCodeVault,
        oauth_states: OAuthStateManager,
        provider: OAuthProvider,
        policy: MFAPolicyStore,
    ):
        self.users = users
        self.credentials = credentials
        self.tokens = tokens
        self.totp = totp
        self.backup_codes = backup_codes
        self.oauth_states = oauth_states
        self.provider = provider
        self.policy = policy

    # =========================================================================
    # Helpers
    # =========================================================================

    def _full_token(self, user: User) -> str:
        return self.tokens.issue_full(user.id, user.email, user.name, user.roles)

    def _require_user(self, user_id: int) -> User:
        """Resolve the subject of an already-validated token."""
        user = self.users.find_by_id(user_id)
        if user is None or not user.is_active:
            raise InvalidToken(f"token subject {user_id} missing or inactive")
        return user

    # =========================================================================
    # Password login
    # =========================================================================

    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate and decide the next step.

        - no TOTP secret      -> temp token, purpose ``setup``
        - TOTP enabled        -> temp token, purpose ``verify``
        - enforced, unenrolled -> full token + ``requires_2fa_setup``
        - otherwise           -> full token
        """
        email = (email or "").strip().lower()
        try:
            user = self.credentials.verify(self.users.find_by_email(email), email, password)
        except InvalidCredentials as e:
            log_event("login", user=email, details=f"failed: {e.code}", status="warning")
            raise

        if not user.has_totp_secret:
            log_event("login", user=email, details="password ok, 2FA setup required", status="info")
            return LoginResult(
                temp_token=self.tokens.issue_temp(user.id, user.email, TokenPurpose.SETUP),
                purpose=TokenPurpose.SETUP,
            )

        if user.totp_enabled:
            log_event("login", user=email, details="password ok, 2FA verification required", status="info")
            return LoginResult(
                temp_token=self.tokens.issue_temp(user.id, user.email, TokenPurpose.VERIFY),
                purpose=TokenPurpose.VERIFY,
            )

        # Soft enforcement: access is granted, the client is nudged to enroll
        if self.policy.enforces_2fa():
            log_event("login", user=email, details="success, 2FA enforced but not enrolled", status="warning")
            return LoginResult(token=self._full_token(user), requires_2fa_setup=True)

        log_event("login", user=email, details="success")
        return LoginResult(token=self._full_token(user))

    # =========================================================================
    # OAuth
    # =========================================================================

    def begin_oauth(self, client_ip: str, user_agent: str) -> str:
        """Issue a state and return the provider's consent URL."""
        return self.oauth_states.issue(client_ip, user_agent)

    def complete_oauth(self, code: str, state: str, client_ip: str, user_agent: str) -> str:
        """Consume the state, exchange the code, resolve the user, return a full token.

        State checks run before any provider call, so a replayed or expired
        callback never reaches the token exchange.
        """
        try:
            self.oauth_states.consume(state, client_ip, user_agent)
            profile = self.provider.fetch_profile(self.provider.exchange_code(code))
        except Exception as e:
            log_event("oauth", details=f"callback rejected: {getattr(e, 'code', type(e).__name__)}", status="warning")
            raise

        user = self.users.find_by_google_id(profile.id) if profile.id else None
        if user is None:
            user = self.users.find_by_email(profile.email)
            if user is not None and profile.id:
                self.users.link_google_id(user.id, profile.id)
                user = self.users.find_by_id(user.id)
                log_event("oauth", user=user.email, details=f"linked {self.provider.name} account")
            elif user is None:
                user = self.users.create(
                    email=profile.email,
                    name=profile.name,
                    roles=("USER",),
                    google_id=profile.id or None,
                )
                log_event("oauth", user=user.email, details=f"created user from {self.provider.name} profile")

        if not user.is_active:
            log_event("oauth", user=user.email, details="inactive account", status="warning")
            raise InvalidCredentials(f"account {user.id} is inactive")

        log_event("oauth", user=user.email, details="success")
        return self._full_token(user)

    # =========================================================================
    # 2FA enrollment
    # =========================================================================

    def setup(self, user_id: int) -> TOTPProvisioning:
        """Generate and store a secret without enabling it."""
        user = self._require_user(user_id)
        if user.totp_enabled:
            raise TOTPAlreadyEnabled(f"user {user_id} already has 2FA enabled")

        provisioning = self.totp.generate_secret(user.email)
        self.users.set_totp_secret(user.id, provisioning.secret)
        log_event("2fa_setup", user=user.email, details="secret generated")
        return provisioning

    def setup_verify(self, user_id: int, code: str, issue_token: bool = False) -> Optional[str]:
        """Confirm the stored secret with a first code, then enable 2FA.

        Returns a full token when ``issue_token`` is set (the caller came
        in with a setup temp token and still needs a session).
        """
        user = self._require_user(user_id)
        if not user.has_totp_secret:
            raise TOTPSetupNotInitiated(f"user {user_id} has no pending secret")

        if not self.totp.validate_code(user.totp_secret, code):
            log_event("2fa_enabled", user=user.email, details="invalid confirmation code", status="warning")
            raise InvalidTOTPCode(f"setup confirmation failed for user {user_id}")

        if not self.users.enable_totp(user.id):
            raise TOTPSetupNotInitiated(f"secret for user {user_id} vanished before enable")
        log_event("2fa_enabled", user=user.email, details="2FA enabled")
        return self._full_token(user) if issue_token else None

    def disable(self, user_id: int) -> None:
        """Clear secret and flag and drop all backup codes."""
        user = self._require_user(user_id)
        self.users.disable_totp(user.id)
        log_event("2fa_disabled", user=user.email, details="2FA disabled, backup codes purged")

    # =========================================================================
    # 2FA login verification
    # =========================================================================

    def verify_login(self, temp_token: str, code: str) -> str:
        """Exchange a verify temp token plus a TOTP code for a full token."""
        claims = self.tokens.validate_temp(temp_token, TokenPurpose.VERIFY)
        user = self._require_user(claims.user_id)

        if not user.totp_enabled or not self.totp.validate_code(user.totp_secret, code):
            log_event("2fa_verify", user=user.email, details="invalid TOTP code", status="warning")
            raise InvalidTOTPCode(f"TOTP verification failed for user {user.id}")

        log_event("2fa_verify", user=user.email, details="success")
        return self._full_token(user)

    def verify_backup_code(self, temp_token: str, code: str) -> str:
        """Exchange a verify temp token plus a backup code for a full token."""
        claims = self.tokens.validate_temp(temp_token, TokenPurpose.VERIFY)
        user = self._require_user(claims.user_id)

        try:
            self.backup_codes.verify(user.id, code)
        except Exception:
            log_event("backup_code", user=user.email, details="rejected", status="warning")
            raise

        log_event("backup_code", user=user.email, details="backup code redeemed")
        return self._full_token(user)

    # =========================================================================
    # Backup codes and status
    # =========================================================================

    def generate_backup_codes(self, user_id: int) -> list[str]:
        user = self._require_user(user_id)
        if not user.totp_enabled:
            raise TOTPNotEnabled(f"user {user_id} has 2FA disabled")

        codes = self.backup_codes.generate_batch(user.id)
        log_event("backup_code", user=user.email, details=f"generated {len(codes)} backup codes")
        return codes

    def status(self, user_id: int) -> dict:
        user = self._require_user(user_id)
        return {
            "totp_enabled": user.totp_enabled,
            "setup_pending": user.has_totp_secret and not user.totp_enabled,
            "backup_codes_remaining": self.backup_codes.remaining(user.id) if user.totp_enabled else 0,
        }
