"""
Audit trail of authentication decisions.

Login outcomes, 2FA enrollment and verification, OAuth callbacks and policy
changes are recorded with ``log_event``. The most recent events stay in
memory for inspection; each one is also written to the ``ledger.audit``
logger so it lands in the structured log stream.

    from core import log_event

    log_event("2fa_verify", user="alice@example.com", details="invalid TOTP code", status="warning")

Details pass through redaction first: passwords, TOTP secrets, codes and
bearer tokens never reach the log.
"""

import logging
import os
import re
import threading
from collections import deque
from typing import Optional

from core.timestamps import isonow

MAX_EVENTS = 500
REDACTED = "***REDACTED***"

audit_logger = logging.getLogger("ledger.audit")

# =============================================================================
# Redaction
# =============================================================================

ENABLE_LOG_REDACTION = os.getenv("ENABLE_LOG_REDACTION", "true").lower() == "true"
# Very large payloads are stored as-is
MAX_REDACTION_LENGTH = 10240

_KEY_VALUE_SECRETS = (
    r'password|passwd|pwd'
    r'|totp[_-]?secret|secret|api[_-]?key'
    r'|backup[_-]?code|temp[_-]?token|auth[_-]?token|token|code'
)

REDACTION_PATTERNS = [
    # key=value and key: value
    (re.compile(rf'\b({_KEY_VALUE_SECRETS})\s*[=:]\s*\S+', re.IGNORECASE), rf'\1={REDACTED}'),
    # "key": "value" inside JSON fragments
    (re.compile(r'(["\'](?:password|secret|token|code)["\'])\s*:\s*["\'][^"\']+["\']', re.IGNORECASE),
     rf'\1: "{REDACTED}"'),
    (re.compile(r'(Bearer\s+)[A-Za-z0-9\-_\.]{20,}', re.IGNORECASE), rf'\1{REDACTED}'),
    # bare JWTs
    (re.compile(r'\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+'), REDACTED),
]

_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _redact_sensitive(text: str) -> str:
    if not (ENABLE_LOG_REDACTION and text) or len(text) > MAX_REDACTION_LENGTH:
        return text
    for pattern, replacement in REDACTION_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class EventLogger:
    """Bounded, thread-safe store of audit events (oldest dropped first)."""

    def __init__(self, max_events: int = MAX_EVENTS):
        self._events: deque = deque(maxlen=max_events)
        self._guard = threading.Lock()

    def log(
        self,
        action: str,
        details: Optional[str] = None,
        status: str = "success",
        user: Optional[str] = None,
    ) -> dict:
        """Record one event and mirror it to ``ledger.audit``.

        Args:
            action: Event type: login, 2fa_setup, 2fa_enabled, 2fa_verify,
                backup_code, 2fa_disabled, oauth or mfa_settings
            details: Free text, redacted before it is stored
            status: success, info, warning or error
            user: Subject email or id

        Returns:
            The stored event
        """
        event = {
            "timestamp": isonow(),
            "action": action,
            "details": _redact_sensitive(details) if details else None,
            "status": status,
        }
        if user is not None:
            event["user"] = str(user)

        with self._guard:
            self._events.append(event)

        audit_logger.log(
            _LEVELS.get(status, logging.INFO),
            f"{action}: {event['details'] or status}",
            extra={"user": event.get("user")},
        )
        return event

    def get_events(self, limit: int = 50, action: Optional[str] = None, user: Optional[str] = None) -> list[dict]:
        """Newest first, optionally filtered by action and user."""
        with self._guard:
            snapshot = list(self._events)
        matching = [
            e for e in reversed(snapshot)
            if (not action or e["action"] == action) and (not user or e.get("user") == user)
        ]
        return matching[:limit]

    def clear(self) -> None:
        with self._guard:
            self._events.clear()


event_logger = EventLogger()


def log_event(
    action: str,
    details: Optional[str] = None,
    status: str = "success",
    user: Optional[str] = None,
) -> dict:
    return event_logger.log(action, details=details, status=status, user=user)


def get_event_log(limit: int = 50, action: Optional[str] = None, user: Optional[str] = None) -> list[dict]:
    return event_logger.get_events(limit, action=action, user=user)


def clear_event_log() -> None:
    event_logger.clear()
