from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # Some backends (SQLite) hand timestamps back without tzinfo.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_past(deadline: datetime | None, now: datetime) -> bool:
    if deadline is None:
        return False
    return now > ensure_utc(deadline)
