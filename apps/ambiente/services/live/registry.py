"""Authoritative bookkeeping of who is currently connected.

The registry is a plain data structure: it never sends anything. Callers
(the broadcast router) decide what to tell clients after each mutation.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from threading import Lock
from typing import Any
from uuid import uuid4

from ambiente.core.exceptions import SessionAlreadyRegisteredError
from ambiente.core.utils import from_epoch, isoformat_z
from ambiente.services.live.throttle import ThrottleGate

logger = logging.getLogger(__name__)

DISPLAY_ID_LENGTH = 8


@dataclass
class LiveSession:
    session_id: str
    user_id: str
    connected_at: float
    last_seen_at: float
    identity: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def display_id(self) -> str:
        return (self.identity or self.user_id)[:DISPLAY_ID_LENGTH]

    def copy(self) -> LiveSession:
        return replace(self, metadata=dict(self.metadata))


@dataclass(frozen=True)
class PresenceEntry:
    id: str
    connect_time: datetime

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "connectTime": isoformat_z(self.connect_time)}


PresenceSnapshot = tuple[PresenceEntry, ...]


class SessionRegistry:
    """Live sessions plus their throttle keys, behind one lock."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        throttle: ThrottleGate | None = None,
    ) -> None:
        self._clock = clock
        self._lock = Lock()
        self._sessions: dict[str, LiveSession] = {}
        self._throttle = throttle or ThrottleGate(clock=clock)

    def register(
        self,
        session_id: str,
        metadata: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> LiveSession:
        now = self._clock()
        with self._lock:
            if session_id in self._sessions:
                logger.error("Session %s registered twice", session_id)
                raise SessionAlreadyRegisteredError(
                    f"Session {session_id} is already registered",
                )
            session = LiveSession(
                session_id=session_id,
                user_id=user_id or str(uuid4()),
                connected_at=now,
                last_seen_at=now,
                metadata=dict(metadata or {}),
            )
            self._sessions[session_id] = session
            return session.copy()

    def touch(self, session_id: str) -> None:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning("touch() for unknown session %s (evicted?)", session_id)
                return
            session.last_seen_at = now

    def annotate(
        self,
        session_id: str,
        identity: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LiveSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.debug("annotate() for unknown session %s ignored", session_id)
                return None
            if identity:
                session.identity = identity
            if metadata:
                session.metadata.update(metadata)
            return session.copy()

    def deregister(self, session_id: str) -> LiveSession | None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            purged = self._throttle.purge(session_id)
        if session is not None:
            logger.debug("Session %s deregistered (%d throttle keys purged)", session_id, purged)
        return session

    def should_admit(self, session_id: str, event_kind: str, min_interval_ms: float) -> bool:
        """Throttle check that never creates keys for sessions that are not live."""
        with self._lock:
            if session_id not in self._sessions:
                logger.debug("Throttle check for unknown session %s dropped", session_id)
                return False
            return self._throttle.should_admit(session_id, event_kind, min_interval_ms)

    def snapshot(self) -> PresenceSnapshot:
        with self._lock:
            return tuple(
                PresenceEntry(id=s.display_id, connect_time=from_epoch(s.connected_at))
                for s in self._sessions.values()
            )

    def get(self, session_id: str) -> LiveSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.copy() if session is not None else None

    def sessions(self) -> list[LiveSession]:
        with self._lock:
            return [s.copy() for s in self._sessions.values()]

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def stale_sessions(self, threshold_s: float) -> list[LiveSession]:
        now = self._clock()
        with self._lock:
            return [
                s.copy() for s in self._sessions.values() if now - s.last_seen_at > threshold_s
            ]

    def throttle_keys(self) -> list[tuple[str, str]]:
        with self._lock:
            return self._throttle.keys()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions


__all__ = ["LiveSession", "PresenceEntry", "PresenceSnapshot", "SessionRegistry"]
