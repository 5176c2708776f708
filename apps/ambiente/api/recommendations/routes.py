from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from ambiente.api.dependencies import get_db_session
from ambiente.core.dependencies import get_live_hub
from ambiente.core.rate_limit import enforce_api_rate_limit
from ambiente.core.settings import settings
from ambiente.schemas.recommendation import (
    HistoryPage,
    Pagination,
    RecommendationCreate,
    RecommendationOut,
    RecommendationSaved,
    SavedRecommendationId,
    StatsData,
    StatsResponse,
)
from ambiente.services.live.hub import LiveHub
from ambiente.services.recommendations import RecommendationService, total_pages

router = APIRouter(tags=["recommendations"])


@router.post(
    "/guardar-recomendacion",
    response_model=RecommendationSaved,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_api_rate_limit)],
)
async def save_recommendation(
    payload: RecommendationCreate,
    session: Session = Depends(get_db_session),
    hub: LiveHub = Depends(get_live_hub),
) -> RecommendationSaved:
    row = await run_in_threadpool(RecommendationService(session).submit, payload)
    # Fan-out touches per-connection asyncio queues; stay on the event loop.
    hub.publish_recommendation(row)
    return RecommendationSaved(data=SavedRecommendationId(id=row.id))


@router.get("/obtener-historial", response_model=HistoryPage)
def get_history(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, le=1000),
    session: Session = Depends(get_db_session),
) -> HistoryPage:
    limit = limit or settings.history_page_size
    rows, total = RecommendationService(session).page(page=page, limit=limit)
    return HistoryPage(
        data=[RecommendationOut.model_validate(row) for row in rows],
        pagination=Pagination(
            page=page,
            limit=limit,
            totalPages=total_pages(total, limit),
            totalCount=total,
        ),
    )


@router.get("/api/stats", response_model=StatsResponse)
def get_stats(
    session: Session = Depends(get_db_session),
    hub: LiveHub = Depends(get_live_hub),
) -> StatsResponse:
    aggregate = RecommendationService(session).aggregate()
    return StatsResponse(
        data=StatsData(**aggregate.model_dump(), userStats=hub.user_stats()),
    )
