"""ADFLOW — Clock helpers.

Timestamps are stored as naive UTC so SQLite and PostgreSQL round-trip
the same values.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def advance(previous: datetime | None, now: datetime | None = None) -> datetime:
    """Return a timestamp strictly after ``previous``."""
    now = now or utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now
