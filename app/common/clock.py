"""
Time source used by services that depend on "now".

Services receive a Clock instead of calling datetime.now() directly so the
status sweep can be driven deterministically.
"""
from datetime import datetime, timezone
from typing import Optional


class Clock:
    """Reloj del sistema (UTC, timezone-aware)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


system_clock = Clock()
