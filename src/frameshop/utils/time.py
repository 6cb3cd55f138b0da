"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    # Fixed precision keeps stored timestamps lexically ordered.
    return to_utc(value).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    return to_utc(datetime.fromisoformat(value))


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock used outside of tests."""

    def now(self) -> datetime:
        return utc_now()


class FixedClock:
    """Manually advanced clock for deterministic lookback windows."""

    def __init__(self, start: datetime) -> None:
        self._now = to_utc(start)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = to_utc(value)
