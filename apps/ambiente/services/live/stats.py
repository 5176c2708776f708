from __future__ import annotations

from datetime import date, datetime
from threading import Lock
from typing import Any

from ambiente.core.utils import clock_label, isoformat_z


class PresenceStats:
    """Counters that outlive individual sessions.

    `today` counts connections since the last UTC midnight, `unique` counts
    distinct users (the announced identity when there is one), and `history`
    keeps one presence count per `HH:MM` label, capped at `history_size`.
    """

    def __init__(self, *, history_size: int = 24) -> None:
        self.history_size = history_size
        self._lock = Lock()
        self._today_date: date | None = None
        self._today = 0
        self._unique: set[str] = set()
        self._history: list[dict[str, Any]] = []

    def record_connect(self, user_key: str, now: datetime) -> None:
        with self._lock:
            if self._today_date != now.date():
                self._today_date = now.date()
                self._today = 0
            self._today += 1
            self._unique.add(user_key)

    def record_identity(self, provisional_key: str, identity: str) -> None:
        """Replace the per-connection key with the user's stable identity."""
        with self._lock:
            self._unique.discard(provisional_key)
            self._unique.add(identity)

    def record_presence(self, count: int, now: datetime) -> list[dict[str, Any]]:
        label = clock_label(now)
        with self._lock:
            for point in self._history:
                if point["time"] == label:
                    point["count"] = count
                    break
            else:
                self._history.append({"time": label, "count": count, "timestamp": isoformat_z(now)})
                if len(self._history) > self.history_size:
                    self._history.pop(0)
            return [dict(point) for point in self._history]

    def history(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(point) for point in self._history]

    @property
    def today(self) -> int:
        with self._lock:
            return self._today

    @property
    def unique(self) -> int:
        with self._lock:
            return len(self._unique)


__all__ = ["PresenceStats"]
