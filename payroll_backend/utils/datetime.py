"""UTC datetime utilities used across the backend."""
from __future__ import annotations

from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Coerce a datetime to UTC, attaching tzinfo when missing."""
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Return an ISO 8601 string in UTC with a trailing 'Z'."""
    coerced = ensure_utc(value)
    if coerced is None:
        return None
    return coerced.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def isoformat_utc_now() -> str:
    """Convenience helper to return the current UTC time as an ISO string."""
    return isoformat_utc(utc_now())  # type: ignore[return-value]


def parse_datetime(value) -> Optional[datetime]:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes (naive values are assumed to be UTC, which is how
    SQLite hands them back) and ISO 8601 strings with or without a 'Z'.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def hours_since(value, now: Optional[datetime] = None) -> Optional[float]:
    """Hours elapsed between a timestamp and now (or the supplied reference)."""
    moment = parse_datetime(value)
    if moment is None:
        return None
    reference = ensure_utc(now) if now is not None else utc_now()
    return (reference - moment).total_seconds() / 3600


def hours_ago(hours: float, now: Optional[datetime] = None) -> datetime:
    """Return the UTC instant that lies the given number of hours in the past."""
    reference = ensure_utc(now) if now is not None else utc_now()
    return reference - timedelta(hours=hours)
