"""
Construction of the auth subsystem.

One ``AuthServices`` bundle is built per Flask app and stored in
``app.extensions``; views reach it through ``get_services()``. The signing
key and every collaborator are passed in explicitly, so tests can build
isolated instances side by side.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from flask import current_app

from config.settings import AppSettings
from core.db import DatabaseManager

from ledger.auth.backup_codes import BackupCodeVault
from ledger.auth.credentials import CredentialVerifier, ExternalAuthClient, ExternalAuthDelegate
from ledger.auth.encryption import SecretCipher
from ledger.auth.mfa_policy import MFAPolicyStore
from ledger.auth.oauth_state import OAuthStateManager
from ledger.auth.orchestrator import LoginOrchestrator
from ledger.auth.provider import GoogleOAuthClient, OAuthProvider
from ledger.auth.repositories import (
    BackupCodeRepository,
    MFASettingsRepository,
    OauthStateRepository,
    UserRepository,
)
from ledger.auth.tokens import TokenIssuer
from ledger.auth.totp import TOTPEngine

logger = logging.getLogger(__name__)

EXTENSION_KEY = "ledger_auth"


@dataclass
class AuthServices:
    db: DatabaseManager
    users: UserRepository
    tokens: TokenIssuer
    policy: MFAPolicyStore
    orchestrator: LoginOrchestrator


def build_services(
    settings: AppSettings,
    db: DatabaseManager,
    provider: Optional[OAuthProvider] = None,
    delegate: Optional[ExternalAuthDelegate] = None,
) -> AuthServices:
    """Wire every auth component from settings.

    Args:
        settings: Loaded application settings
        db: Connection manager for the auth tables
        provider: OAuth provider; a Google client is built when omitted
        delegate: External credential checker; built from CLIENT_AUTH_URL when omitted
    """
    auth = settings.auth
    jwt_secret = auth.jwt_secret.get_secret_value()

    cipher = SecretCipher(
        key=auth.totp_encryption_key.get_secret_value(),
        fallback_secret=jwt_secret,
    )
    users = UserRepository(db, cipher)

    if provider is None:
        provider = GoogleOAuthClient(
            client_id=settings.oauth.client_id,
            client_secret=settings.oauth.client_secret.get_secret_value(),
            redirect_url=settings.oauth.redirect_url,
            timeout=settings.oauth.timeout_seconds,
        )
    if delegate is None and auth.client_auth_url:
        logger.info(f"External auth delegate enabled: {auth.client_auth_url}")
        delegate = ExternalAuthClient(auth.client_auth_url, timeout=auth.client_auth_timeout_seconds)

    tokens = TokenIssuer(
        secret=jwt_secret,
        algorithm=auth.jwt_algorithm,
        full_ttl=timedelta(hours=auth.jwt_expiration_hours),
        temp_ttl=timedelta(minutes=auth.temp_token_expiration_minutes),
    )
    policy = MFAPolicyStore(MFASettingsRepository(db))

    orchestrator = LoginOrchestrator(
        users=users,
        credentials=CredentialVerifier(delegate),
        tokens=tokens,
        totp=TOTPEngine(issuer=auth.totp_issuer, valid_window=auth.totp_valid_window),
        backup_codes=BackupCodeVault(BackupCodeRepository(db), batch_size=auth.backup_code_count),
        oauth_states=OAuthStateManager(
            OauthStateRepository(db),
            provider,
            ttl_minutes=auth.oauth_state_ttl_minutes,
        ),
        provider=provider,
        policy=policy,
    )
    return AuthServices(db=db, users=users, tokens=tokens, policy=policy, orchestrator=orchestrator)


def get_services() -> AuthServices:
    """Return the bundle attached to the current app."""
    return current_app.extensions[EXTENSION_KEY]
