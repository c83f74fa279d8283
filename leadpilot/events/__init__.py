"""Lifecycle event envelopes and the in-process bus."""

from .bus import EventBus, InMemoryEventBus, emit_trigger
from .schemas import TRIGGER_CHANNEL, EventType, TriggerEvent, build_event

__all__ = [
    "EventBus",
    "EventType",
    "InMemoryEventBus",
    "TRIGGER_CHANNEL",
    "TriggerEvent",
    "build_event",
    "emit_trigger",
]
