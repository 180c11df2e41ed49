"""
Domain notification bus - in-process publish/subscribe for world happenings.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List

log = logging.getLogger(__name__)


class GameEvent(str, Enum):
    ACTOR_MOVED = "actor_moved"
    COMBAT_STARTED = "combat_started"
    WORLD_EVENT_STARTED = "world_event_started"
    WORLD_EVENT_ENDED = "world_event_ended"
    BROADCAST = "broadcast"


Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """Synchronous fan-out of notifications to registered handlers."""

    def __init__(self):
        self._handlers: Dict[GameEvent, List[Handler]] = defaultdict(list)

    def subscribe(self, event: GameEvent, handler: Handler) -> None:
        self._handlers[GameEvent(event)].append(handler)

    def unsubscribe(self, event: GameEvent, handler: Handler) -> None:
        handlers = self._handlers.get(GameEvent(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: GameEvent, payload: Dict[str, Any] = None) -> int:
        """Deliver to every handler; a failing handler is logged and skipped.

        Returns the number of handlers that completed.
        """
        delivered = 0
        for handler in list(self._handlers.get(GameEvent(event), [])):
            try:
                handler(payload or {})
                delivered += 1
            except Exception as e:
                log.error("Handler for %s failed: %s", event, e)
        return delivered
