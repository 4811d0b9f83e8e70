"""
In-process publish/subscribe channel for domain events.

Handlers for an event run concurrently. A failing handler is logged and never
affects the publisher or the other handlers.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable

from .domain.events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventChannel:
    """Async in-memory event bus."""

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler):
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)
            logger.debug(f"Subscribed handler to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler):
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event_type]

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    def clear(self):
        self._handlers.clear()

    async def publish(self, event: DomainEvent):
        handlers = list(self._handlers.get(event.event_type, []))
        if not handlers:
            logger.debug(f"No handlers registered for {event.event_type}")
            return

        results = await asyncio.gather(
            *(handler(event) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Event handler {getattr(handler, '__qualname__', handler)} failed "
                    f"for {event.event_type} ({event.event_id}): {result}",
                    exc_info=result,
                )

    async def publish_all(self, events: list[DomainEvent]):
        for event in events:
            await self.publish(event)
