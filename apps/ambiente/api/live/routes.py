from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ambiente.core.dependencies import get_live_hub
from ambiente.services.live.hub import LiveHub, WebSocketTransport

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def _client_metadata(websocket: WebSocket) -> dict[str, str]:
    metadata: dict[str, str] = {}
    forwarded_for = websocket.headers.get("x-forwarded-for")
    if forwarded_for:
        metadata["ip"] = forwarded_for.split(",")[0].strip()
    elif websocket.client:
        metadata["ip"] = websocket.client.host
    user_agent = websocket.headers.get("user-agent")
    if user_agent:
        metadata["user_agent"] = user_agent
    return metadata


@router.websocket("/ws")
async def live_ws(
    websocket: WebSocket,
    hub: LiveHub = Depends(get_live_hub),
) -> None:
    await websocket.accept()
    # The hub closes the socket itself when it refuses a connection.
    session_id = await hub.connect(WebSocketTransport(websocket), _client_metadata(websocket))
    if session_id is None:
        return

    reason = "client disconnect"
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                reason = f"transport close ({message.get('code', 1000)})"
                break
            frame = message.get("text") or message.get("bytes")
            if frame:
                await hub.receive(session_id, frame)
    except WebSocketDisconnect as exc:
        reason = f"transport close ({exc.code})"
    except Exception as exc:
        reason = "transport error"
        logger.warning("Live socket %s failed: %s", session_id, exc)
    finally:
        await hub.disconnect(session_id, reason)
