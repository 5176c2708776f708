from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass(frozen=True)
class ActivityRecord:
    type: str
    user_id: str
    time: str
    timestamp: str
    data: dict[str, Any] | None = None
    reason: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "userId": self.user_id,
            "time": self.time,
            "timestamp": self.timestamp,
        }
        if self.data is not None:
            payload["data"] = dict(self.data)
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


class ActivityLog:
    """Newest-first ring buffer of recent actions; the oldest entry falls off."""

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = Lock()
        self._records: deque[ActivityRecord] = deque(maxlen=capacity)

    def append(self, record: ActivityRecord) -> ActivityRecord:
        with self._lock:
            self._records.appendleft(record)
        return record

    def records(self) -> list[ActivityRecord]:
        with self._lock:
            return list(self._records)

    def payload(self) -> list[dict[str, Any]]:
        return [record.to_payload() for record in self.records()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["ActivityLog", "ActivityRecord"]
