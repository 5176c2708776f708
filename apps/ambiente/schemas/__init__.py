"""Pydantic schemas shared across the app."""

from .live import AnnouncePayload, LeavingPayload, LiveEnvelope, UserActionPayload
from .recommendation import (
    HistoryPage,
    LiveUserStats,
    Pagination,
    PerceptionAggregate,
    RecommendationCreate,
    RecommendationOut,
    RecommendationSaved,
    StatsData,
    StatsResponse,
)

__all__ = [
    "AnnouncePayload",
    "HistoryPage",
    "LeavingPayload",
    "LiveEnvelope",
    "LiveUserStats",
    "Pagination",
    "PerceptionAggregate",
    "RecommendationCreate",
    "RecommendationOut",
    "RecommendationSaved",
    "StatsData",
    "StatsResponse",
    "UserActionPayload",
]
