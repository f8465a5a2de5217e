"""Time sources for expiry checks.

All timestamps are naive UTC, matching how the models store them.
"""
from datetime import datetime, timedelta, timezone

from flask import current_app


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    def now(self) -> datetime:
        return utcnow()


class FrozenClock:
    """Clock that only moves when told to. Used by tests and fixtures."""

    def __init__(self, at: datetime):
        self._now = at

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, at: datetime) -> None:
        self._now = at


def get_clock():
    return current_app.extensions.get("clock") or SystemClock()
