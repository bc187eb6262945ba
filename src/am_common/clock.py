"""Clock sources.

Engines never call datetime.now() directly; they take a Clock so that
expiry can be driven deterministically in tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return utc_now()


class FixedClock:
    """Manually driven clock. Time only moves when advance() is called."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or utc_now()

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value
