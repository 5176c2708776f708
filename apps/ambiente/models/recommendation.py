"""Persisted recommendations: four actions and the perception they produce."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Index, String
from sqlmodel import Field

from ambiente.models.base import Model


class Recommendation(Model, table=True):
    """One finalized simulator state submitted by a user."""

    __tablename__ = "recomendaciones"
    __table_args__ = (Index("ix_recomendaciones_timestamp", "timestamp"),)

    accion1: float = Field(sa_column=Column(Float, nullable=False))
    accion2: float = Field(sa_column=Column(Float, nullable=False))
    accion3: float = Field(sa_column=Column(Float, nullable=False))
    accion4: float = Field(sa_column=Column(Float, nullable=False))
    percepcion: float = Field(sa_column=Column(Float, nullable=False))
    timestamp: datetime = Field(sa_column=Column(DateTime, nullable=False))
    user_id: str | None = Field(
        default=None,
        sa_column=Column("userId", String(36), nullable=True),
    )


__all__ = ["Recommendation"]
