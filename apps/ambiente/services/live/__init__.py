"""Live session layer: presence, throttling, routing and fan-out."""

from ambiente.services.live.activity import ActivityLog, ActivityRecord
from ambiente.services.live.hub import LiveHub, LiveTransport, WebSocketTransport
from ambiente.services.live.reconciler import LoopGroup, PeriodicLoop, PresenceReconciler
from ambiente.services.live.registry import LiveSession, PresenceEntry, SessionRegistry
from ambiente.services.live.router import (
    Audience,
    BroadcastRouter,
    Inbound,
    Outbound,
    OutboundMessage,
    ThrottlePolicy,
)
from ambiente.services.live.stats import PresenceStats
from ambiente.services.live.throttle import ThrottleGate

__all__ = [
    "ActivityLog",
    "ActivityRecord",
    "Audience",
    "BroadcastRouter",
    "Inbound",
    "LiveHub",
    "LiveSession",
    "LiveTransport",
    "LoopGroup",
    "Outbound",
    "OutboundMessage",
    "PeriodicLoop",
    "PresenceEntry",
    "PresenceReconciler",
    "PresenceStats",
    "SessionRegistry",
    "ThrottleGate",
    "ThrottlePolicy",
    "WebSocketTransport",
]
