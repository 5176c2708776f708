from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ACTION_FIELDS = ("accion1", "accion2", "accion3", "accion4")


def parse_number(value: Any) -> float:
    """Accept numbers and numeric strings, including a decimal comma ("1,5")."""
    if isinstance(value, bool):
        raise ValueError(f'"{value}" is not a valid number')
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        try:
            number = float(text)
        except ValueError as exc:
            raise ValueError(f'"{value}" is not a valid number') from exc
    else:
        raise ValueError(f'"{value}" is not a valid number')
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f'"{value}" is not a valid number')
    return number


class RecommendationCreate(BaseModel):
    """Inbound recommendation, from HTTP or the live socket.

    `percepcion` may be omitted; the server derives it from the four actions.
    """

    model_config = ConfigDict(populate_by_name=True)

    accion1: float
    accion2: float
    accion3: float
    accion4: float
    percepcion: float | None = None
    timestamp: datetime | None = None
    user_id: str | None = Field(default=None, alias="userId", max_length=36)

    @field_validator(*ACTION_FIELDS, mode="before")
    @classmethod
    def _parse_action(cls, value: Any) -> float:
        return parse_number(value)

    @field_validator("percepcion", mode="before")
    @classmethod
    def _parse_perception(cls, value: Any) -> float | None:
        if value is None or value == "":
            return None
        return parse_number(value)

    def actions(self) -> tuple[float, float, float, float]:
        return (self.accion1, self.accion2, self.accion3, self.accion4)


class RecommendationOut(BaseModel):
    id: int
    accion1: float
    accion2: float
    accion3: float
    accion4: float
    percepcion: float
    timestamp: datetime
    user_id: str | None = Field(default=None, serialization_alias="userId")

    model_config = ConfigDict(from_attributes=True)


class SavedRecommendationId(BaseModel):
    id: int


class RecommendationSaved(BaseModel):
    status: Literal["success"] = "success"
    message: str = "Recommendation saved"
    data: SavedRecommendationId


class Pagination(BaseModel):
    page: int
    limit: int
    totalPages: int
    totalCount: int


class HistoryPage(BaseModel):
    status: Literal["success"] = "success"
    data: list[RecommendationOut]
    pagination: Pagination


class PerceptionAggregate(BaseModel):
    totalRecommendations: int = 0
    minPerception: float | None = None
    maxPerception: float | None = None
    avgPerception: float | None = None


class LiveUserStats(BaseModel):
    currentUsers: int
    todayUsers: int
    totalUniqueUsers: int


class StatsData(PerceptionAggregate):
    userStats: LiveUserStats


class StatsResponse(BaseModel):
    status: Literal["success"] = "success"
    data: StatsData


__all__ = [
    "ACTION_FIELDS",
    "HistoryPage",
    "LiveUserStats",
    "Pagination",
    "PerceptionAggregate",
    "RecommendationCreate",
    "RecommendationOut",
    "RecommendationSaved",
    "SavedRecommendationId",
    "StatsData",
    "StatsResponse",
    "parse_number",
]
