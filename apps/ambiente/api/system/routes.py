from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ambiente.core.dependencies import get_live_hub
from ambiente.core.utils import isoformat_z, utcnow
from ambiente.services.live.hub import LiveHub

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
def health(hub: LiveHub = Depends(get_live_hub)) -> dict[str, Any]:
    return {
        "status": "ok",
        "uptime": round(hub.uptime, 3),
        "timestamp": isoformat_z(utcnow()),
        "users": len(hub.registry),
    }
