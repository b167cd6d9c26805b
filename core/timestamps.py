"""Timezone-aware UTC timestamp utilities.

All persisted timestamps go through these helpers so that every stored
value carries a +00:00 offset and a missing value stays ``None`` instead
of collapsing to a sentinel like the epoch.
"""

from datetime import datetime, timezone
from typing import Optional


def now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def isonow() -> str:
    """Return the current UTC time as an ISO 8601 string with +00:00 offset."""
    return now().isoformat()


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage, keeping ``None`` as ``None``."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a stored timestamp, assuming UTC if no timezone info.

    Accepts ISO strings (SQLite) or datetime objects (PostgreSQL drivers).
    """
    if value is None or value == "":
        return None
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
