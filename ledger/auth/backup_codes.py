"""
One-time backup codes for account recovery.

Plaintext codes leave this module exactly once (from ``generate_batch``);
only salted hashes are stored.
"""
import logging
import secrets
from typing import Callable

from werkzeug.security import generate_password_hash, check_password_hash

from core.errors import InvalidBackupCode
from core.timestamps import now

from .repositories import BackupCodeRepository

logger = logging.getLogger(__name__)


def format_code(raw_hex: str) -> str:
    """``a1b2c3d4e5f60718`` -> ``A1B2-C3D4-E5F6-0718``"""
    raw_hex = raw_hex.upper()
    return "-".join(raw_hex[i:i + 4] for i in range(0, len(raw_hex), 4))


def normalize_code(code: str) -> str:
    """Strip dashes and whitespace and uppercase, so any transcription matches."""
    return "".join(code.split()).replace("-", "").upper()


class BackupCodeVault:
    """Issues and redeems a user's batch of backup codes."""

    def __init__(
        self,
        repo: BackupCodeRepository,
        batch_size: int = 10,
        clock: Callable = now,
    ):
        self._repo = repo
        self.batch_size = batch_size
        self._clock = clock

    def generate_batch(self, user_id: int) -> list[str]:
        """Replace the user's codes with a fresh batch and return the plaintext."""
        codes = [format_code(secrets.token_hex(8)) for _ in range(self.batch_size)]
        hashes = [generate_password_hash(normalize_code(c)) for c in codes]
        self._repo.replace_batch(user_id, hashes, self._clock())
        logger.info(f"Generated {len(codes)} backup codes for user {user_id}")
        return codes

    def verify(self, user_id: int, code: str) -> None:
        """Redeem one code.

        Scans the unused codes; on a hash match, claims the row with a
        conditional update. A lost claim means a concurrent request took
        that code, so the scan moves on.

        Raises:
            InvalidBackupCode: nothing matched (or every match was taken)
        """
        presented = normalize_code(code or "")
        if not presented:
            raise InvalidBackupCode("empty backup code")

        for record in self._repo.find_unused(user_id):
            if not check_password_hash(record.code_hash, presented):
                continue
            if self._repo.mark_used(record.id, self._clock()):
                logger.info(f"Backup code {record.id} redeemed by user {user_id}")
                return
        raise InvalidBackupCode(f"no unused backup code matched for user {user_id}")

    def remaining(self, user_id: int) -> int:
        return self._repo.count_unused(user_id)
