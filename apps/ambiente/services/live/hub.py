"""Realtime hub for the shared simulator.

An in-memory WebSocket broadcaster for a single process deployment. The hub
owns the transports and the periodic loops; the registry, throttle and router
it wires together never perform I/O themselves.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol
from uuid import uuid4

from fastapi import WebSocket
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketState

from ambiente.core.exceptions import SessionAlreadyRegisteredError
from ambiente.core.settings import Settings, settings
from ambiente.models.recommendation import Recommendation
from ambiente.schemas.live import LiveEnvelope
from ambiente.schemas.recommendation import (
    ACTION_FIELDS,
    LiveUserStats,
    RecommendationCreate,
    RecommendationOut,
)
from ambiente.services.live.activity import ActivityLog
from ambiente.services.live.reconciler import LoopGroup, PeriodicLoop, PresenceReconciler
from ambiente.services.live.registry import LiveSession, SessionRegistry
from ambiente.services.live.router import (
    Audience,
    BroadcastRouter,
    Inbound,
    Outbound,
    OutboundMessage,
    ThrottlePolicy,
)
from ambiente.services.live.stats import PresenceStats
from ambiente.services.recommendations import RecommendationGateway

logger = logging.getLogger(__name__)


class LiveTransport(Protocol):
    @property
    def connected(self) -> bool: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class WebSocketTransport:
    """Adapts a Starlette WebSocket to `LiveTransport`."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def connected(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, data: Any) -> None:
        await self.websocket.send_json(data)

    async def close(self, code: int = 1000) -> None:
        if WebSocketState.DISCONNECTED in (
            self.websocket.client_state,
            self.websocket.application_state,
        ):
            return
        await self.websocket.close(code=code)


class _Connection:
    """One transport with its own bounded outbound queue and writer task.

    Enqueueing never blocks, so a slow recipient only delays itself, and
    frames reach each recipient in the order they were admitted.
    """

    def __init__(self, session_id: str, transport: LiveTransport, *, maxsize: int) -> None:
        self.session_id = session_id
        self.transport = transport
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.broken = False
        self._writer: asyncio.Task[None] | None = None

    @property
    def alive(self) -> bool:
        return not self.broken and self.transport.connected

    def start(self) -> None:
        self._writer = asyncio.create_task(self._drain(), name=f"ws-writer:{self.session_id}")

    def offer(self, frame: dict[str, Any]) -> bool:
        if self.broken:
            return False
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full for %s; dropping %s", self.session_id, frame.get("event")
            )
            return False
        return True

    async def _drain(self) -> None:
        while True:
            frame = await self.queue.get()
            try:
                if not self.broken:
                    await self.transport.send_json(frame)
            except Exception as exc:
                self.broken = True
                logger.warning("Send to %s failed: %s", self.session_id, exc)
            finally:
                self.queue.task_done()

    async def flush(self, timeout: float | None = None) -> None:
        try:
            await asyncio.wait_for(self.queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Outbound queue for %s not drained in %.1fs", self.session_id, timeout)

    async def close(self, code: int = 1000) -> None:
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)
        try:
            await self.transport.close(code=code)
        except Exception as exc:
            logger.debug("Closing transport %s failed: %s", self.session_id, exc)


class LiveHub:
    """Tracks live connections and fans out router output to them."""

    def __init__(
        self,
        *,
        gateway: RecommendationGateway | None = None,
        config: Settings = settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.registry = SessionRegistry(clock=clock)
        self.activity = ActivityLog(config.activity_capacity)
        self.stats = PresenceStats(history_size=config.presence_history_size)
        self.router = BroadcastRouter(
            self.registry,
            self.activity,
            self.stats,
            throttle=ThrottlePolicy(
                slider_ms=config.slider_throttle_ms,
                slider_broadcast_ms=config.slider_broadcast_throttle_ms,
                slider_state_ms=config.slider_state_throttle_ms,
            ),
            clock=clock,
        )
        self.reconciler = PresenceReconciler(
            self.registry,
            self.transport_status,
            stale_after_s=config.stale_after_seconds,
        )
        self.loops = LoopGroup(
            [
                PeriodicLoop("reconcile", config.reconcile_interval_seconds, self.reconcile_once),
                PeriodicLoop("presence", config.presence_refresh_seconds, self.refresh_presence),
            ]
        )
        self.accepting = True
        self._sealed = False
        self._connections: dict[str, _Connection] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._started = time.monotonic()

    # Lifecycle
    def start(self) -> None:
        self.accepting = True
        self._sealed = False
        if self.loops.running:
            return
        self.loops.start()
        logger.info("Live hub started")

    async def shutdown(self) -> None:
        if self._sealed:
            return
        self.accepting = False
        self.dispatch([self.router.shutdown_notice()])
        self._sealed = True
        await self.loops.stop()

        connections = list(self._connections.values())
        await asyncio.gather(
            *(conn.flush(self.config.shutdown_drain_seconds) for conn in connections)
        )
        for conn in connections:
            await conn.close(code=1001)
        self._connections.clear()

        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        logger.info("Live hub stopped (%d connections closed)", len(connections))

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started

    # Connections
    async def connect(
        self,
        transport: LiveTransport,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        if not self.accepting:
            await transport.close(code=1013)
            return None
        session_id = uuid4().hex
        while session_id in self._connections or session_id in self.registry:
            session_id = uuid4().hex

        conn = _Connection(session_id, transport, maxsize=self.config.outbound_queue_size)
        conn.start()
        self._connections[session_id] = conn
        try:
            messages = self.router.on_connect(session_id, metadata)
        except SessionAlreadyRegisteredError:
            logger.exception("Could not register live session %s", session_id)
            self._connections.pop(session_id, None)
            await conn.close(code=1011)
            return None

        self.dispatch(messages)
        if self.gateway is not None and self.config.initial_recommendations_limit > 0:
            self._spawn(self._seed_recommendations(session_id, self.gateway))
        return session_id

    async def disconnect(self, session_id: str, reason: str | None = None) -> None:
        conn = self._connections.pop(session_id, None)
        self.dispatch(self.router.on_disconnect(session_id, reason))
        if conn is not None:
            await conn.close()

    async def receive(self, session_id: str, frame: str | bytes | dict[str, Any]) -> None:
        """Handle one inbound frame; failures are logged, never raised."""
        try:
            if isinstance(frame, (str, bytes)):
                frame = json.loads(frame)
            envelope = LiveEnvelope.model_validate(frame)
        except (ValueError, RecursionError, ValidationError) as exc:
            logger.debug("Malformed frame from %s dropped: %s", session_id, exc)
            return

        try:
            if envelope.event == Inbound.RECOMMENDATION.value:
                await self._handle_recommendation(session_id, envelope.data)
            else:
                self.dispatch(self.router.route(session_id, envelope.event, envelope.data))
        except Exception:
            logger.exception("Live event %s from %s failed", envelope.event, session_id)

    def transport_status(self, session_id: str) -> bool | None:
        conn = self._connections.get(session_id)
        if conn is None:
            return None
        return conn.alive

    # Fan-out
    def dispatch(self, messages: Iterable[OutboundMessage]) -> int:
        """Queue each message for its recipients; return frames enqueued."""
        if self._sealed:
            logger.debug("Hub is shut down; outbound messages dropped")
            return 0
        live_ids = self.registry.session_ids()
        queued = 0
        for message in messages:
            frame = message.to_frame()
            for session_id in message.recipients(live_ids):
                conn = self._connections.get(session_id)
                if conn is not None and conn.offer(frame):
                    queued += 1
        return queued

    def publish_recommendation(self, recommendation: Recommendation) -> dict[str, Any]:
        payload = RecommendationOut.model_validate(recommendation).model_dump(
            mode="json", by_alias=True
        )
        self.dispatch(self.router.recommendation_stored(payload))
        return payload

    async def flush(self, timeout: float | None = None) -> None:
        """Wait until background work and every outbound queue is drained."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await asyncio.gather(*(conn.flush(timeout) for conn in list(self._connections.values())))

    # Periodic
    async def reconcile_once(self) -> list[LiveSession]:
        evicted = self.reconciler.sweep()
        for session in evicted:
            conn = self._connections.pop(session.session_id, None)
            if conn is not None:
                await conn.close(code=1001)
        self.dispatch(self.router.on_evicted(evicted))
        self.dispatch([self.router.heartbeat()])
        logger.info(
            "Live status: %d sessions, %d transports, %d evicted",
            len(self.registry),
            len(self._connections),
            len(evicted),
        )
        return evicted

    async def refresh_presence(self) -> None:
        if len(self.registry) > 0:
            self.dispatch(self.router.presence_messages())

    def user_stats(self) -> LiveUserStats:
        return LiveUserStats(
            currentUsers=len(self.registry),
            todayUsers=self.stats.today,
            totalUniqueUsers=self.stats.unique,
        )

    # Internals
    async def _handle_recommendation(self, session_id: str, data: Any) -> None:
        if session_id not in self.registry:
            logger.info("Recommendation from unknown session %s (raced eviction)", session_id)
            return
        self.registry.touch(session_id)
        try:
            payload = RecommendationCreate.model_validate(data)
        except ValidationError as exc:
            logger.debug("Incomplete recommendation from %s dropped: %s", session_id, exc)
            return

        values = payload.model_dump(mode="json", include={*ACTION_FIELDS, "percepcion"})
        self.dispatch(self.router.recommendation_submitted(session_id, values))

        if self.gateway is None:
            self.dispatch(self.router.recommendation_failed(session_id, "Storage is not available"))
            return
        try:
            row = await run_in_threadpool(self.gateway.submit, payload)
        except Exception as exc:
            logger.error("Recommendation from %s not stored: %s", session_id, exc)
            self.dispatch(
                self.router.recommendation_failed(session_id, "Recommendation could not be saved")
            )
            return
        self.publish_recommendation(row)

    async def _seed_recommendations(
        self, session_id: str, gateway: RecommendationGateway
    ) -> None:
        try:
            rows = await run_in_threadpool(gateway.recent, self.config.initial_recommendations_limit)
        except Exception as exc:
            logger.error("Failed to load initial recommendations: %s", exc)
            return
        if not rows:
            return
        data = [
            RecommendationOut.model_validate(row).model_dump(mode="json", by_alias=True)
            for row in rows
        ]
        self.dispatch(
            [OutboundMessage(Outbound.INITIAL_RECOMMENDATIONS, data, Audience.ONLY, session_id)]
        )

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)


__all__ = ["LiveHub", "LiveTransport", "WebSocketTransport"]
