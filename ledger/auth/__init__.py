"""
Authentication and multi-factor verification.

Public API:
- Decorators: jwt_required, setup_token_allowed, admin_required
- Components: LoginOrchestrator, TokenIssuer, TOTPEngine, BackupCodeVault,
  OAuthStateManager, CredentialVerifier, MFAPolicyStore
- Provisioning: create_user, hash_password, validate_password_strength
- Storage: SecretCipher, UserRepository, init_database

Import Rules:
- External callers: Use `from ledger.auth import X` (this facade)
- Internal auth modules: Use `from .submodule import X` (direct imports)
"""

# =============================================================================
# Decorators
# =============================================================================
from .decorators import (
    jwt_required,
    setup_token_allowed,
    admin_required,
)

# =============================================================================
# Components
# =============================================================================
from .backup_codes import BackupCodeVault
from .credentials import CredentialVerifier, ExternalAuthClient
from .mfa_policy import MFAPolicyStore
from .oauth_state import OAuthStateManager, fingerprint
from .orchestrator import LoginOrchestrator
from .provider import GoogleOAuthClient
from .tokens import TokenIssuer, get_token_from_request
from .totp import TOTPEngine

# =============================================================================
# Users & Passwords
# =============================================================================
from .identity import create_user
from .passwords import hash_password, verify_password, validate_password_strength

# =============================================================================
# Types
# =============================================================================
from .types import LoginResult, ProviderProfile, TokenPurpose, User

# =============================================================================
# Storage
# =============================================================================
from .encryption import SecretCipher
from .repositories import UserRepository
from .schema import initialize as init_database

__all__ = [
    # Decorators
    "jwt_required",
    "setup_token_allowed",
    "admin_required",

    # Components
    "BackupCodeVault",
    "CredentialVerifier",
    "ExternalAuthClient",
    "MFAPolicyStore",
    "OAuthStateManager",
    "fingerprint",
    "LoginOrchestrator",
    "GoogleOAuthClient",
    "TokenIssuer",
    "get_token_from_request",
    "TOTPEngine",

    # Users & Passwords
    "create_user",
    "hash_password",
    "verify_password",
    "validate_password_strength",

    # Types
    "LoginResult",
    "ProviderProfile",
    "TokenPurpose",
    "User",

    # Storage
    "SecretCipher",
    "UserRepository",
    "init_database",
]
