"""In-process event bus with typed event payloads.

Producers publish events without knowing who consumes them. Lesson
completion, for example, is published by `LessonService` and picked up
by progress tracking through a subscription made at application start.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Optional

_LOGGER = logging.getLogger("coursehub.events")


@dataclass(frozen=True)
class LessonCompletedEvent:
    lesson_id: int
    user_id: int


@dataclass(frozen=True)
class ExercisesSyncedEvent:
    updated: int
    commit: Optional[str] = None


class EventBus:
    """Synchronous publish/subscribe channel keyed by event class."""

    def __init__(self):
        self._handlers: dict[type, list[Callable]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type, handler: Callable) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Callable) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event) -> int:
        """Deliver `event` to every handler of its exact type.

        Returns the number of handlers that completed without raising. A
        failing handler is logged and does not stop delivery to the rest.
        """
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                _LOGGER.exception("event handler %r failed for %r", handler, event)
        return delivered


event_bus = EventBus()
