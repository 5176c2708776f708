"""Central dependency providers.

The live hub and the recommendation gateway are process-scoped: every request
and every WebSocket shares one instance. Tests clear the caches or override
the providers through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from ambiente.core.settings import settings

if TYPE_CHECKING:
    from ambiente.services.live.hub import LiveHub
    from ambiente.services.recommendations import RecommendationGateway


@lru_cache(maxsize=1)
def get_recommendation_gateway() -> RecommendationGateway:
    from ambiente.core.database import SessionLocal
    from ambiente.services.recommendations import RecommendationGateway

    return RecommendationGateway(SessionLocal)


@lru_cache(maxsize=1)
def get_live_hub() -> LiveHub:
    from ambiente.services.live.hub import LiveHub

    return LiveHub(gateway=get_recommendation_gateway(), config=settings)


__all__ = ["get_live_hub", "get_recommendation_gateway"]
