"""
In-process event bus

Subscribers register for an event name or a glob pattern (``alert:*``).
``emit`` never runs a subscriber inline: coroutine handlers become tasks and
plain callables are scheduled on the loop, so a slow or failing subscriber
cannot block the emitter or its sibling subscribers.
"""

import asyncio
import fnmatch
from typing import Any, Awaitable, Callable, Dict, List, Set, Union

from ..core.logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[str, Dict[str, Any]], Union[None, Awaitable[None]]]


class EventBus:
    """Observer registry with fire-and-forget delivery"""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler(event, payload)``; returns a callable that unsubscribes it"""
        self._handlers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, event: str) -> int:
        return len(self._matching(event))

    def _matching(self, event: str) -> List[EventHandler]:
        matched = []
        for pattern, handlers in self._handlers.items():
            if pattern == event or fnmatch.fnmatchcase(event, pattern):
                matched.extend(handlers)
        return matched

    def emit(self, event: str, payload: Dict[str, Any] = None) -> None:
        """Schedule delivery of ``payload`` to every matching subscriber"""
        payload = payload or {}
        handlers = self._matching(event)
        if not handlers:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop; dropped event {event}")
            return

        for handler in handlers:
            if asyncio.iscoroutinefunction(handler):
                task = loop.create_task(self._run_async(handler, event, payload))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
            else:
                loop.call_soon(self._run_sync, handler, event, payload)

    @staticmethod
    async def _run_async(handler: EventHandler, event: str, payload: Dict[str, Any]) -> None:
        try:
            await handler(event, payload)
        except Exception as e:
            logger.error(f"Error in event handler for {event}: {e}")

    @staticmethod
    def _run_sync(handler: EventHandler, event: str, payload: Dict[str, Any]) -> None:
        try:
            handler(event, payload)
        except Exception as e:
            logger.error(f"Error in event handler for {event}: {e}")

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished"""
        # Let call_soon callbacks run before collecting tasks
        await asyncio.sleep(0)
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
