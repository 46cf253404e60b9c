"""
WebSocket endpoint streaming health checks and alerts
"""

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...core.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.websocket("/health")
async def health_websocket(websocket: WebSocket):
    broadcaster = websocket.app.state.broadcaster
    if not await broadcaster.connect(websocket):
        return

    try:
        await websocket.send_text(json.dumps({
            "type": "health:status",
            "data": websocket.app.state.monitor.get_health_status(),
        }, default=str))

        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(websocket)
