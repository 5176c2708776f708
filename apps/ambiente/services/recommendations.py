"""Persistence for finalized recommendations.

`RecommendationService` wraps a request-scoped session so API handlers stay
thin. `RecommendationGateway` opens its own short-lived sessions and is what
the live hub talks to, from a worker thread, outside any request.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ambiente.core.exceptions import PersistenceError
from ambiente.core.utils import utcnow_naive
from ambiente.models.recommendation import Recommendation
from ambiente.schemas.recommendation import PerceptionAggregate, RecommendationCreate
from ambiente.services.perception import compute_perception

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime | None) -> datetime:
    if value is None:
        return utcnow_naive()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@dataclass
class RecommendationService:
    """CRUD and aggregates over the `recomendaciones` table."""

    session: Session

    def submit(self, payload: RecommendationCreate) -> Recommendation:
        """Store a recommendation, deriving the perception score when absent."""

        percepcion = payload.percepcion
        if percepcion is None:
            percepcion = compute_perception(*payload.actions())

        row = Recommendation(
            accion1=payload.accion1,
            accion2=payload.accion2,
            accion3=payload.accion3,
            accion4=payload.accion4,
            percepcion=percepcion,
            timestamp=_naive_utc(payload.timestamp),
            user_id=payload.user_id,
        )
        try:
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Failed to store recommendation: %s", exc)
            raise PersistenceError("Failed to store recommendation") from exc
        return row

    def recent(self, limit: int = 10) -> list[Recommendation]:
        """Newest recommendations first."""

        stmt = select(Recommendation).order_by(Recommendation.id.desc()).limit(limit)
        return list(self.session.exec(stmt))

    def page(self, *, page: int = 1, limit: int = 100) -> tuple[list[Recommendation], int]:
        page = max(1, page)
        limit = max(1, limit)
        stmt = (
            select(Recommendation)
            .order_by(Recommendation.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = list(self.session.exec(stmt))
        total = self.session.exec(select(func.count()).select_from(Recommendation)).one()
        return rows, int(total)

    def aggregate(self) -> PerceptionAggregate:
        stmt = select(
            func.count(Recommendation.id),
            func.min(Recommendation.percepcion),
            func.max(Recommendation.percepcion),
            func.avg(Recommendation.percepcion),
        )
        count, low, high, avg = self.session.exec(stmt).one()
        return PerceptionAggregate(
            totalRecommendations=int(count or 0),
            minPerception=low,
            maxPerception=high,
            avgPerception=float(avg) if avg is not None else None,
        )


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0


class RecommendationGateway:
    """Session-per-call access used by the live session layer."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def submit(self, payload: RecommendationCreate) -> Recommendation:
        session = self._session_factory()
        try:
            return RecommendationService(session).submit(payload)
        finally:
            session.close()

    def recent(self, limit: int = 10) -> list[Recommendation]:
        session = self._session_factory()
        try:
            return RecommendationService(session).recent(limit)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load recent recommendations") from exc
        finally:
            session.close()


__all__ = ["RecommendationGateway", "RecommendationService", "total_pages"]
