from __future__ import annotations

import time
from collections.abc import Callable


class ThrottleGate:
    """Admit/drop decisions per (session, event kind) with a minimum spacing.

    The gate is not synchronized on its own: `SessionRegistry` owns one and
    guards it with the same lock as the sessions, so that deregistering a
    session and purging its keys happen together.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last_admitted: dict[tuple[str, str], float] = {}

    def should_admit(self, session_id: str, event_kind: str, min_interval_ms: float) -> bool:
        key = (session_id, event_kind)
        now = self._clock()
        last = self._last_admitted.get(key)
        if last is not None and (now - last) * 1000.0 < min_interval_ms:
            return False
        self._last_admitted[key] = now
        return True

    def purge(self, session_id: str) -> int:
        """Drop every key owned by `session_id`; return how many were removed."""
        doomed = [key for key in self._last_admitted if key[0] == session_id]
        for key in doomed:
            del self._last_admitted[key]
        return len(doomed)

    def keys(self) -> list[tuple[str, str]]:
        return list(self._last_admitted)

    def __len__(self) -> int:
        return len(self._last_admitted)


__all__ = ["ThrottleGate"]
