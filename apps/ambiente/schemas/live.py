"""Wire shapes for the live WebSocket channel.

Frames travel as `{"event": <name>, "data": <object>}` in both directions.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ambiente.schemas.recommendation import parse_number


class LiveEnvelope(BaseModel):
    event: str = Field(min_length=1, max_length=64)
    data: Any = None


class AnnouncePayload(BaseModel):
    """`userConnected`: the client's persistent identity and descriptive info."""

    model_config = ConfigDict(extra="ignore")

    userId: str = Field(min_length=1, max_length=128)
    clientInfo: dict[str, Any] | None = None


class UserActionPayload(BaseModel):
    """`userAction`: slider drags (`type="slider"`) and discrete actions.

    Discrete actions may carry any `value` or `payload`; only slider input
    must have a numeric `value` (see `numeric_value`).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = Field(
        default="action", min_length=1, validation_alias=AliasChoices("type", "kind")
    )
    userId: str | None = None
    time: str | None = None
    fieldId: str | None = None
    value: Any = None
    payload: Any = None

    @field_validator("type", "userId", "time", "fieldId", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def numeric_value(self) -> float | None:
        """Slider position as a float; raises ValueError when it is not a number."""
        if self.value is None:
            return None
        return parse_number(self.value)


class LeavingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    userId: str | None = None
    reason: str | None = None


__all__ = ["AnnouncePayload", "LeavingPayload", "LiveEnvelope", "UserActionPayload"]
