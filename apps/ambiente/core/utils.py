from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""

    return datetime.now(timezone.utc)


def utcnow_naive() -> datetime:
    """Return the current time as a naive UTC datetime.

    The recommendations table stores naive UTC timestamps.
    """

    return utcnow().replace(tzinfo=None)


def from_epoch(ts: float) -> datetime:
    """Convert epoch seconds into an aware UTC datetime."""

    return datetime.fromtimestamp(ts, tz=timezone.utc)


def isoformat_z(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a trailing `Z`, as browsers emit."""

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def clock_label(value: datetime) -> str:
    """Short `HH:MM` label used by activity records and presence history."""

    return value.strftime("%H:%M")


__all__ = ["clock_label", "from_epoch", "isoformat_z", "utcnow", "utcnow_naive"]
