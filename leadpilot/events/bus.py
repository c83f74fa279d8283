"""Process-local publish/subscribe bus."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol

from .schemas import TRIGGER_CHANNEL, EventType, TriggerEvent, build_event

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus(Protocol):
    def publish(self, exchange: str, event_name: str, payload: Any) -> None: ...

    def subscribe(self, event_name: str, handler: Handler) -> None: ...


class InMemoryEventBus:
    """Dispatch published payloads to subscribers on a thread pool.

    Subscribers register either for a specific event name or for a whole
    exchange; both are called. With ``max_workers=0`` handlers run inline on
    the publishing thread, which keeps tests deterministic.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="event-bus")
            if max_workers > 0
            else None
        )
        self._pending: set[Future] = set()

    def subscribe(self, event_name: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers.get(event_name, []):
                self._handlers[event_name].remove(handler)

    def publish(self, exchange: str, event_name: str, payload: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(exchange, ()))
            if event_name != exchange:
                handlers.extend(self._handlers.get(event_name, ()))
        for handler in handlers:
            if self._executor is None:
                self._invoke(handler, event_name, payload)
                continue
            future = self._executor.submit(self._invoke, handler, event_name, payload)
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._discard)

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    @staticmethod
    def _invoke(handler: Handler, event_name: str, payload: Any) -> None:
        try:
            handler(payload)
        except Exception:
            logger.exception("Event handler failed", extra={"event": event_name})

    def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries to complete."""

        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.result(timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)


def emit_trigger(bus: EventBus | None, event_type: EventType | str, **fields: Any) -> TriggerEvent:
    """Build a :class:`TriggerEvent` and publish it on the trigger channel."""

    event = build_event(event_type, **fields)
    if bus is None:
        return event
    try:
        bus.publish(TRIGGER_CHANNEL, event.event_type, event)
    except Exception:
        logger.exception(
            "Failed to publish event",
            extra={"event": event.event_type, "tenant_id": str(event.tenant_id)},
        )
    return event


__all__ = ["EventBus", "Handler", "InMemoryEventBus", "emit_trigger"]
