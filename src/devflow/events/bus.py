"""Async event bus for devflow.

Store and engine side effects that never surface as return values or errors
(best-effort backups, index self-repair) are published here, so callers and
tests can observe them. The bus also keeps a bounded history of what it
emitted.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from devflow.events.types import EventType

logger = logging.getLogger(__name__)

Listener = Callable[[EventType, dict[str, Any]], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class Event:
    type: EventType
    data: dict[str, Any]
    at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class EventBus:
    """Async pub/sub with per-type and global listeners."""

    def __init__(self, *, history_size: int = 1000) -> None:
        self._listeners: dict[EventType, list[Listener]] = defaultdict(list)
        self._global_listeners: list[Listener] = []
        self._history: deque[Event] = deque(maxlen=history_size)

    def on(self, event_type: EventType, listener: Listener) -> None:
        self._listeners[event_type].append(listener)

    def on_all(self, listener: Listener) -> None:
        self._global_listeners.append(listener)

    def off(self, event_type: EventType, listener: Listener) -> None:
        if listener in self._listeners[event_type]:
            self._listeners[event_type].remove(listener)

    async def emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> None:
        """Record the event and deliver it to listeners.

        A failing listener is logged and skipped; it never fails the emitter.
        """
        data = data or {}
        self._history.append(Event(event_type, data))
        listeners = self._listeners.get(event_type, []) + self._global_listeners

        for listener in listeners:
            try:
                await listener(event_type, data)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in event listener for %s", event_type)

    def history(self, event_type: EventType | None = None) -> list[Event]:
        """Emitted events, oldest first, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def clear(self) -> None:
        """Remove all listeners and forget the history."""
        self._listeners.clear()
        self._global_listeners.clear()
        self._history.clear()
