"""Time sources for the engine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class WorkflowClock:
    """Supplies the current UTC time to the engine."""

    @property
    def utc_now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(WorkflowClock):
    """Clock that only moves when told to.

    Lets scheduling, delays and retention windows be exercised without
    real waiting.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime.now(timezone.utc)

    @property
    def utc_now(self) -> datetime:
        return self._now

    @utc_now.setter
    def utc_now(self, value: datetime) -> None:
        self._now = value

    def advance(self, delta: timedelta) -> "ManualClock":
        self._now = self._now + delta
        return self


def as_utc(value: datetime) -> datetime:
    """Treat a naive datetime as UTC; aware values are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Whole milliseconds since the epoch, truncating sub-millisecond parts."""
    return (as_utc(value) - EPOCH) // timedelta(milliseconds=1)
