"""
WebSocket broadcaster for health and alert events
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Set

from fastapi import WebSocket

from ..core.logging_config import get_logger
from ..services.event_bus import EventBus

logger = get_logger(__name__)

BROADCAST_EVENTS = ("health:checked", "alert:*")


class HealthBroadcaster:
    """Republishes monitor events as JSON frames to every connected client"""

    def __init__(self, events: EventBus, max_connections: int = 100):
        self.events = events
        self.max_connections = max_connections
        self.connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._unsubscribers: List[Callable[[], None]] = []

    def start(self) -> None:
        if self._unsubscribers:
            return
        for pattern in BROADCAST_EVENTS:
            self._unsubscribers.append(self.events.subscribe(pattern, self._on_event))
        logger.info("Health broadcaster subscribed to monitor events")

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        async with self._lock:
            connections = list(self.connections)
            self.connections.clear()
        for websocket in connections:
            try:
                await websocket.close(code=1001)
            except (RuntimeError, OSError):
                pass
        logger.info("Health broadcaster stopped")

    async def connect(self, websocket: WebSocket) -> bool:
        async with self._lock:
            if len(self.connections) >= self.max_connections:
                logger.warning(f"Max WebSocket connections reached: {len(self.connections)}")
                await websocket.close(code=1013, reason="Server overloaded")
                return False
            await websocket.accept()
            self.connections.add(websocket)

        logger.info(f"Health WebSocket connected ({len(self.connections)} total)")
        return True

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self.connections.discard(websocket)
        logger.info(f"Health WebSocket disconnected ({len(self.connections)} total)")

    async def _on_event(self, event: str, payload: Dict[str, Any]) -> None:
        await self.broadcast({
            "type": event,
            "data": payload,
            "timestamp": datetime.utcnow().isoformat(),
        })

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send to every client; a client whose send fails is dropped. Returns the delivered count"""
        frame = json.dumps(message, default=str)
        async with self._lock:
            targets = list(self.connections)

        results = await asyncio.gather(
            *(websocket.send_text(frame) for websocket in targets), return_exceptions=True
        )

        failed = [ws for ws, result in zip(targets, results) if isinstance(result, Exception)]
        if failed:
            async with self._lock:
                for websocket in failed:
                    self.connections.discard(websocket)
            logger.warning(f"Dropped {len(failed)} WebSocket clients after failed send")

        return len(targets) - len(failed)
