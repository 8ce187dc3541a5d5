"""UTC time helpers shared by models, repositories and services."""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Seam for tests."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime. SQLite hands timestamps back naive."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
