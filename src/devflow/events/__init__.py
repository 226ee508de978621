"""devflow event system."""

from devflow.events.bus import Event, EventBus
from devflow.events.types import EventType

__all__ = ["Event", "EventBus", "EventType"]
