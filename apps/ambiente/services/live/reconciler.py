"""Ghost-session sweeps and the periodic loops that drive them."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from ambiente.services.live.registry import LiveSession, SessionRegistry

logger = logging.getLogger(__name__)

# Transport probe: None when the connection handle is gone entirely, otherwise
# whether the transport still reports itself as connected.
TransportProbe = Callable[[str], Optional[bool]]


class PresenceReconciler:
    """Finds registry entries whose connection is no longer actually live.

    A session is evicted when its transport handle has disappeared, or when it
    has been silent for longer than `stale_after_s` *and* its transport
    reports it is not connected. While the handle exists, recent activity
    protects a session from eviction whatever the transport reports.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        probe: TransportProbe,
        *,
        stale_after_s: float = 120.0,
    ) -> None:
        self.registry = registry
        self.probe = probe
        self.stale_after_s = stale_after_s

    def find_ghosts(self) -> list[LiveSession]:
        stale = {s.session_id for s in self.registry.stale_sessions(self.stale_after_s)}
        ghosts: list[LiveSession] = []
        for session in self.registry.sessions():
            status = self.probe(session.session_id)
            if status is None or (status is False and session.session_id in stale):
                ghosts.append(session)
        return ghosts

    def sweep(self) -> list[LiveSession]:
        """Deregister every ghost; return the sessions actually removed."""
        evicted: list[LiveSession] = []
        for ghost in self.find_ghosts():
            removed = self.registry.deregister(ghost.session_id)
            if removed is not None:
                logger.info(
                    "Reconciliation evicted ghost session [%s], total now: %d",
                    removed.user_id,
                    len(self.registry),
                )
                evicted.append(removed)
        return evicted


class PeriodicLoop:
    """Runs an async callback every `interval_s` until cancelled."""

    def __init__(
        self,
        name: str,
        interval_s: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        self.name = name
        self.interval_s = interval_s
        self.callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"loop:{self.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic loop %s failed; continuing", self.name)

    def cancel(self) -> asyncio.Task[None] | None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        return task


class LoopGroup:
    """Periodic loops that start and stop as one unit."""

    def __init__(self, loops: list[PeriodicLoop]) -> None:
        self.loops = loops

    def start(self) -> None:
        for loop in self.loops:
            loop.start()

    async def stop(self) -> None:
        tasks = [task for task in (loop.cancel() for loop in self.loops) if task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def running(self) -> bool:
        return any(loop.running for loop in self.loops)


__all__ = ["LoopGroup", "PeriodicLoop", "PresenceReconciler", "TransportProbe"]
