"""
Core shared utilities for the ledger auth API.

Database access, the error hierarchy, timestamps and the security event
log live here so both the Flask app and the CLI scripts can use them.
"""

from .event_logger import (
    EventLogger,
    event_logger,
    log_event,
    get_event_log,
    clear_event_log,
)

__all__ = [
    "EventLogger",
    "event_logger",
    "log_event",
    "get_event_log",
    "clear_event_log",
]
