from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    # Keep all lifecycle timestamps in UTC for consistent expiry checks.
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; treat them as UTC before comparing.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_past(value: datetime | None, *, now: datetime | None = None) -> bool:
    # A missing expiry never counts as expired.
    resolved = ensure_utc(value)
    if resolved is None:
        return False
    return resolved <= (now or utc_now())
