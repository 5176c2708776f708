"""Convenient exports for writing ORM models (SQLModel)."""

from sqlmodel import Field, SQLModel

from ambiente.models.base import Model, TimestampMixin
from ambiente.models.recommendation import Recommendation

__all__ = [
    "Field",
    "Model",
    "Recommendation",
    "SQLModel",
    "TimestampMixin",
]
