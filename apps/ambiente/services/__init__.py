"""Service layer package.

Keep imports lazy so importing a single service does not pull in the live hub
or the database engine. Common symbols are still reachable from
`ambiente.services` through `__getattr__` proxies.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "LiveHub",
    "RecommendationGateway",
    "RecommendationService",
    "compute_perception",
]


def __getattr__(name: str) -> Any:  # PEP 562 lazy attribute access
    if name == "LiveHub":
        from .live.hub import LiveHub

        return LiveHub
    if name in {"RecommendationGateway", "RecommendationService"}:
        from .recommendations import RecommendationGateway, RecommendationService

        return {
            "RecommendationGateway": RecommendationGateway,
            "RecommendationService": RecommendationService,
        }[name]
    if name == "compute_perception":
        from .perception import compute_perception

        return compute_perception
    raise AttributeError(name)
