"""
Domain time utilities (pure).

Every lifecycle timestamp (created_at, assigned_at, accepted_at, closed_at,
delivered_at, read_at) is a timezone-aware UTC datetime. These helpers are the
single place that validates, produces and parses them.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforce that a timestamp is UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def require_optional_utc_timestamp(name: str, value: Optional[datetime]) -> None:
    if value is not None:
        require_utc_timestamp(name, value)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_utc_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp into a timezone-aware UTC datetime.

    Supabase returns ISO-8601 strings, sometimes with a trailing 'Z'. Naive values
    are interpreted as UTC. None and empty strings map to None.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    require_utc_timestamp("timestamp", value)
    return value.astimezone(timezone.utc).isoformat()
