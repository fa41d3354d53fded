"""Time-related helpers shared by the stores and the services."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_datetime(dt: datetime) -> datetime:
    """Normalize datetime to timezone-aware UTC.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns, so every comparison goes through here first.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None

    if isinstance(value, datetime):
        return normalize_datetime(value)

    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return normalize_datetime(datetime.fromisoformat(raw))
        except ValueError:
            return None

    return None


def to_iso_utc(ts: datetime | None) -> str | None:
    """Serialize a datetime to ISO-8601 with a UTC ``Z`` suffix."""
    if ts is None:
        return None
    return normalize_datetime(ts).isoformat().replace("+00:00", "Z")


__all__ = ["normalize_datetime", "parse_datetime", "to_iso_utc", "utcnow"]
