"""Inbound live events to outbound messages.

Every handler applies its in-memory state transition (registry, throttle,
activity, stats) and returns the explicit list of messages to send, each with
its audience. Nothing here performs I/O; `LiveHub` delivers the result.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ambiente.core.utils import clock_label, from_epoch, isoformat_z
from ambiente.schemas.live import AnnouncePayload, LeavingPayload, UserActionPayload
from ambiente.services.live.activity import ActivityLog, ActivityRecord
from ambiente.services.live.registry import DISPLAY_ID_LENGTH, LiveSession, SessionRegistry
from ambiente.services.live.stats import PresenceStats

logger = logging.getLogger(__name__)


class Inbound(str, Enum):
    ANNOUNCE = "userConnected"
    USER_ACTION = "userAction"
    RECOMMENDATION = "recommendation"
    PING = "ping"
    LEAVING = "userLeaving"
    REQUEST_STATS = "requestUserStats"
    REQUEST_ACTIVE_USERS = "requestActiveUsers"
    REQUEST_HISTORY = "requestUserHistory"


class Outbound(str, Enum):
    CONNECTION_STATUS = "connectionStatus"
    USER_COUNT = "userCount"
    ACTIVE_USERS = "activeUsers"
    USER_STATS = "userStats"
    USER_HISTORY = "userHistory"
    INITIAL_RECOMMENDATIONS = "initialRecommendations"
    USER_ACTIVITY = "userActivity"
    STATE_UPDATE = "stateUpdate"
    NEW_RECOMMENDATION = "newRecommendation"
    RECOMMENDATION_ERROR = "recommendationError"
    PONG = "pong"
    SERVER_PING = "serverPing"
    SERVER_SHUTDOWN = "serverShutdown"


class Audience(str, Enum):
    ALL = "all"
    ONLY = "only"  # the originating session
    OTHERS = "others"  # everyone except the originating session


@dataclass(frozen=True)
class OutboundMessage:
    event: Outbound
    data: Any
    audience: Audience = Audience.ALL
    session_id: str | None = None

    def to_frame(self) -> dict[str, Any]:
        return {"event": self.event.value, "data": self.data}

    def recipients(self, live_ids: Iterable[str]) -> list[str]:
        if self.audience is Audience.ALL:
            return list(live_ids)
        if self.audience is Audience.ONLY:
            return [sid for sid in live_ids if sid == self.session_id]
        return [sid for sid in live_ids if sid != self.session_id]


@dataclass(frozen=True)
class ThrottlePolicy:
    slider_ms: float = 300
    slider_broadcast_ms: float = 1000
    slider_state_ms: float = 2000


SLIDER = "slider"
SLIDER_BROADCAST = "broadcast_slider"
SLIDER_STATE = "state_update"


class BroadcastRouter:
    def __init__(
        self,
        registry: SessionRegistry,
        activity: ActivityLog,
        stats: PresenceStats,
        *,
        throttle: ThrottlePolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.activity = activity
        self.stats = stats
        self.throttle = throttle or ThrottlePolicy()
        self._clock = clock
        self._handlers: dict[Inbound, Callable[[LiveSession, Any], list[OutboundMessage]]] = {
            Inbound.ANNOUNCE: self._on_announce,
            Inbound.USER_ACTION: self._on_user_action,
            Inbound.PING: self._on_ping,
            Inbound.LEAVING: self._on_leaving,
            Inbound.REQUEST_STATS: self._on_request_stats,
            Inbound.REQUEST_ACTIVE_USERS: self._on_request_active_users,
            Inbound.REQUEST_HISTORY: self._on_request_history,
        }

    # Lifecycle
    def on_connect(
        self,
        session_id: str,
        metadata: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> list[OutboundMessage]:
        session = self.registry.register(session_id, metadata, user_id=user_id)
        now = self._now()
        self.stats.record_connect(session.user_id, now)
        self._record(ActivityRecord(type="connect", user_id=session.display_id, **self._stamp()))
        logger.info("Live session connected [%s], total: %d", session.user_id, len(self.registry))
        history = self.stats.record_presence(len(self.registry), now)
        return [
            OutboundMessage(
                Outbound.CONNECTION_STATUS,
                {"connected": True, "socketId": session_id, "userId": session.user_id},
                Audience.ONLY,
                session_id,
            ),
            *self.presence_messages(),
            OutboundMessage(Outbound.USER_HISTORY, history),
            OutboundMessage(Outbound.USER_STATS, self.user_stats(), Audience.ONLY, session_id),
        ]

    def on_disconnect(self, session_id: str, reason: str | None = None) -> list[OutboundMessage]:
        session = self.registry.deregister(session_id)
        if session is None:
            logger.debug("Disconnect for unknown session %s ignored", session_id)
            return []
        logger.info(
            "Live session disconnected [%s] (%s), remaining: %d",
            session.user_id,
            reason or "unknown",
            len(self.registry),
        )
        return self._departed([session], reason)

    def on_evicted(self, sessions: list[LiveSession]) -> list[OutboundMessage]:
        if not sessions:
            return []
        return self._departed(sessions, "reconciled")

    # Inbound dispatch
    def route(self, session_id: str, event: str, data: Any = None) -> list[OutboundMessage]:
        try:
            kind = Inbound(event)
        except ValueError:
            logger.debug("Unknown live event %r from %s dropped", event, session_id)
            return []

        session = self.registry.get(session_id)
        if session is None:
            logger.info("Event %s for unknown session %s (raced eviction)", kind.value, session_id)
            return []
        self.registry.touch(session_id)

        handler = self._handlers.get(kind)
        if handler is None:
            logger.debug("Event %s is not routed here", kind.value)
            return []
        try:
            return handler(session, data)
        except ValidationError as exc:
            logger.debug("Malformed %s payload from %s: %s", kind.value, session_id, exc)
            return []

    def recommendation_submitted(
        self, session_id: str, values: dict[str, Any]
    ) -> list[OutboundMessage]:
        session = self.registry.get(session_id)
        if session is None:
            return []
        record = self._record(
            ActivityRecord(
                type="recommendation",
                user_id=session.display_id,
                data=values,
                **self._stamp(),
            )
        )
        return [OutboundMessage(Outbound.USER_ACTIVITY, record.to_payload())]

    def recommendation_stored(self, recommendation: dict[str, Any]) -> list[OutboundMessage]:
        return [
            OutboundMessage(Outbound.NEW_RECOMMENDATION, recommendation),
            OutboundMessage(
                Outbound.STATE_UPDATE,
                {
                    "type": "recommendation",
                    "data": recommendation,
                    "timestamp": self._stamp()["timestamp"],
                },
            ),
        ]

    def recommendation_failed(self, session_id: str, message: str) -> list[OutboundMessage]:
        return [
            OutboundMessage(
                Outbound.RECOMMENDATION_ERROR,
                {"status": "error", "message": message},
                Audience.ONLY,
                session_id,
            )
        ]

    # Periodic
    def presence_messages(self) -> list[OutboundMessage]:
        snapshot = self.registry.snapshot()
        return [
            OutboundMessage(Outbound.USER_COUNT, len(snapshot)),
            OutboundMessage(Outbound.ACTIVE_USERS, [entry.to_payload() for entry in snapshot]),
        ]

    def heartbeat(self) -> OutboundMessage:
        return OutboundMessage(Outbound.SERVER_PING, {"timestamp": self._stamp()["timestamp"]})

    def shutdown_notice(self) -> OutboundMessage:
        return OutboundMessage(
            Outbound.SERVER_SHUTDOWN,
            {"message": "The server is shutting down, please reload the page in a few moments."},
        )

    def user_stats(self) -> dict[str, Any]:
        return {
            "current": len(self.registry),
            "today": self.stats.today,
            "total": self.stats.unique,
            "history": self.stats.history(),
            "activity": self.activity.payload(),
        }

    # Handlers
    def _on_announce(self, session: LiveSession, data: Any) -> list[OutboundMessage]:
        payload = AnnouncePayload.model_validate(data)
        metadata = {"client_info": payload.clientInfo} if payload.clientInfo else None
        if payload.clientInfo:
            logger.info("Client info for %s: %s", session.session_id, payload.clientInfo)
        updated = self.registry.annotate(session.session_id, payload.userId, metadata)
        if updated is None:
            return []
        if session.identity != payload.userId:
            self.stats.record_identity(session.identity or session.user_id, payload.userId)
        return [self.presence_messages()[1]]

    def _on_user_action(self, session: LiveSession, data: Any) -> list[OutboundMessage]:
        payload = UserActionPayload.model_validate(data)
        sid = session.session_id
        if payload.type == SLIDER:
            try:
                value = payload.numeric_value()
            except ValueError as exc:
                logger.debug("Slider input from %s without a numeric value: %s", sid, exc)
                return []
            if not self.registry.should_admit(sid, SLIDER, self.throttle.slider_ms):
                return []
            record = self._record(self._action_record(session, payload, value))
            messages = []
            if self.registry.should_admit(sid, SLIDER_BROADCAST, self.throttle.slider_broadcast_ms):
                messages.append(
                    OutboundMessage(
                        Outbound.USER_ACTIVITY, record.to_payload(), Audience.OTHERS, sid
                    )
                )
            if self.registry.should_admit(sid, SLIDER_STATE, self.throttle.slider_state_ms):
                messages.append(
                    OutboundMessage(
                        Outbound.STATE_UPDATE, self._state_update(record), Audience.OTHERS, sid
                    )
                )
            return messages

        record = self._record(self._action_record(session, payload))
        return [
            OutboundMessage(Outbound.USER_ACTIVITY, record.to_payload()),
            OutboundMessage(Outbound.STATE_UPDATE, self._state_update(record)),
        ]

    def _on_ping(self, session: LiveSession, _data: Any) -> list[OutboundMessage]:
        return [
            OutboundMessage(
                Outbound.PONG,
                {"timestamp": self._stamp()["timestamp"], "activeUsers": len(self.registry)},
                Audience.ONLY,
                session.session_id,
            )
        ]

    def _on_leaving(self, session: LiveSession, data: Any) -> list[OutboundMessage]:
        payload = LeavingPayload.model_validate(data or {})
        logger.info(
            "Session %s announced it is leaving (%s)",
            payload.userId or session.user_id,
            payload.reason or "no reason",
        )
        return []

    def _on_request_stats(self, session: LiveSession, _data: Any) -> list[OutboundMessage]:
        sid = session.session_id
        active = self.presence_messages()[1]
        return [
            OutboundMessage(Outbound.USER_STATS, self.user_stats(), Audience.ONLY, sid),
            OutboundMessage(active.event, active.data, Audience.ONLY, sid),
        ]

    def _on_request_active_users(self, session: LiveSession, _data: Any) -> list[OutboundMessage]:
        active = self.presence_messages()[1]
        return [OutboundMessage(active.event, active.data, Audience.ONLY, session.session_id)]

    def _on_request_history(self, session: LiveSession, _data: Any) -> list[OutboundMessage]:
        return [
            OutboundMessage(
                Outbound.USER_HISTORY, self.stats.history(), Audience.ONLY, session.session_id
            )
        ]

    # Helpers
    def _departed(self, sessions: list[LiveSession], reason: str | None) -> list[OutboundMessage]:
        for session in sessions:
            self._record(
                ActivityRecord(
                    type="disconnect",
                    user_id=session.display_id,
                    reason=reason,
                    **self._stamp(),
                )
            )
        history = self.stats.record_presence(len(self.registry), self._now())
        return [*self.presence_messages(), OutboundMessage(Outbound.USER_HISTORY, history)]

    def _action_record(
        self, session: LiveSession, payload: UserActionPayload, value: Any = None
    ) -> ActivityRecord:
        if isinstance(payload.payload, dict):
            data = dict(payload.payload)
        elif payload.payload is not None:
            data = {"payload": payload.payload}
        else:
            data = {}
        if payload.fieldId is not None:
            data.setdefault("fieldId", payload.fieldId)
        if value is None:
            value = payload.value
        if value is not None:
            data.setdefault("value", value)
        stamp = self._stamp()
        return ActivityRecord(
            type=payload.type,
            user_id=(payload.userId or session.display_id)[:DISPLAY_ID_LENGTH],
            time=payload.time or stamp["time"],
            timestamp=stamp["timestamp"],
            data=data,
        )

    def _state_update(self, record: ActivityRecord) -> dict[str, Any]:
        return {
            "type": "userAction",
            "data": record.to_payload(),
            "timestamp": record.timestamp,
        }

    def _record(self, record: ActivityRecord) -> ActivityRecord:
        return self.activity.append(record)

    def _now(self) -> datetime:
        return from_epoch(self._clock())

    def _stamp(self) -> dict[str, str]:
        now = self._now()
        return {"time": clock_label(now), "timestamp": isoformat_z(now)}


__all__ = [
    "Audience",
    "BroadcastRouter",
    "Inbound",
    "Outbound",
    "OutboundMessage",
    "ThrottlePolicy",
]
