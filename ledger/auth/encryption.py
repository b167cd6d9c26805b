"""
At-rest encryption for TOTP secrets.

Secrets are Fernet-encrypted before they reach the ``users`` table so a
database dump alone does not yield working second factors.
"""
import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class SecretCipher:
    """Encrypts and decrypts short secrets with a Fernet key."""

    def __init__(self, key: str = "", fallback_secret: str = ""):
        """
        Args:
            key: Fernet key (urlsafe base64, 32 bytes). Preferred.
            fallback_secret: Used to derive a key when ``key`` is empty.
        """
        self._fernet = Fernet(self._resolve_key(key, fallback_secret))

    @staticmethod
    def _resolve_key(key: str, fallback_secret: str) -> bytes:
        if key:
            return key.encode() if isinstance(key, str) else key
        if not fallback_secret:
            raise ValueError("SecretCipher needs TOTP_ENCRYPTION_KEY or a fallback secret")
        logger.warning(
            "TOTP_ENCRYPTION_KEY not set, deriving from JWT secret. "
            "Set TOTP_ENCRYPTION_KEY for production."
        )
        derived = hashlib.sha256(fallback_secret.encode()).digest()
        return base64.urlsafe_b64encode(derived)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored value.

        Raises:
            cryptography.fernet.InvalidToken: if the key does not match
        """
        return self._fernet.decrypt(ciphertext.encode()).decode()


__all__ = ["SecretCipher", "InvalidToken"]
