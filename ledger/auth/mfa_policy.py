"""System-wide 2FA enforcement policy."""
import logging
from typing import Callable

from core.timestamps import now

from .repositories import MFASettingsRepository
from .types import MFASettings

logger = logging.getLogger(__name__)


class MFAPolicyStore:

    def __init__(self, repo: MFASettingsRepository, clock: Callable = now):
        self._repo = repo
        self._clock = clock

    def get(self) -> MFASettings:
        return self._repo.get()

    def enforces_2fa(self) -> bool:
        return self._repo.get().enforce_2fa

    def update(self, enforce_2fa: bool, admin_id: int) -> MFASettings:
        """Set the flag, recording which admin changed it and when."""
        self._repo.upsert(bool(enforce_2fa), admin_id, self._clock())
        logger.info(f"2FA enforcement set to {bool(enforce_2fa)} by user {admin_id}")
        return self._repo.get()
