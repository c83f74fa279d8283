"""Durable delayed execution of automation steps.

Work is written to a :class:`~leadpilot.automation.repository.StepStore`
with an absolute ``due_at`` and picked up by :meth:`StepScheduler.dispatch_due`,
either from the background :class:`SchedulerWorker` or inline right after an
inbound message is processed (for zero-delay steps). Pending rows survive
process restarts.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from ..timeutils import utcnow
from .repository import StepStore
from .results import ActionResult, ErrorKind
from .schemas import ScheduledStepRecord

logger = logging.getLogger(__name__)

StepHandler = Callable[[ScheduledStepRecord], ActionResult]

RETRYABLE = frozenset({ErrorKind.TRANSIENT})


class StepScheduler:
    def __init__(
        self,
        store: StepStore,
        *,
        max_attempts: int = 3,
        retry_delay: timedelta = timedelta(minutes=1),
        lease: timedelta = timedelta(minutes=5),
        batch_size: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._handlers: dict[str, StepHandler] = {}
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._lease = lease
        self._batch_size = batch_size
        self._clock = clock
        self._dispatch_lock = threading.Lock()

    @property
    def store(self) -> StepStore:
        return self._store

    def now(self) -> datetime:
        return self._clock()

    def register(self, kind: str, handler: StepHandler) -> None:
        self._handlers[kind] = handler

    def schedule(
        self,
        *,
        tenant_id: UUID,
        kind: str,
        delay: timedelta = timedelta(0),
        payload: dict[str, Any] | None = None,
        lead_id: UUID | None = None,
        rule_id: str | None = None,
        step_index: int = 0,
        base_time: datetime | None = None,
    ) -> ScheduledStepRecord:
        """Persist a step due ``delay`` after ``base_time`` (default: now)."""

        due_at = (base_time or self.now()) + delay
        return self._store.add(
            tenant_id=tenant_id,
            kind=kind,
            due_at=due_at,
            payload=payload or {},
            lead_id=lead_id,
            rule_id=rule_id,
            step_index=step_index,
        )

    def dispatch_due(self, now: datetime | None = None) -> list[tuple[ScheduledStepRecord, ActionResult]]:
        """Run every step due at ``now``; each step succeeds or fails alone."""

        moment = now or self.now()
        outcomes: list[tuple[ScheduledStepRecord, ActionResult]] = []
        with self._dispatch_lock:
            steps = self._store.claim_due(moment, self._batch_size, self._lease)
        for step in steps:
            result = self._run(step)
            self._settle(step, result, moment)
            outcomes.append((step, result))
        return outcomes

    def _run(self, step: ScheduledStepRecord) -> ActionResult:
        handler = self._handlers.get(step.kind)
        if handler is None:
            logger.warning("No handler registered for scheduled step kind %s", step.kind)
            return ActionResult.failure(ErrorKind.UNKNOWN_ACTION, f"unknown step kind {step.kind}")
        try:
            return handler(step)
        except Exception as exc:
            logger.exception(
                "Scheduled step failed",
                extra={
                    "tenant_id": str(step.tenant_id),
                    "lead_id": str(step.lead_id),
                    "step_kind": step.kind,
                    "rule_id": step.rule_id,
                },
            )
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))

    def _settle(self, step: ScheduledStepRecord, result: ActionResult, now: datetime) -> None:
        if result.ok:
            self._store.mark_sent(step.id, self.now())
            return
        retry_at = None
        if result.error in RETRYABLE and step.attempts < self._max_attempts:
            retry_at = now + self._retry_delay * step.attempts
        if retry_at is None:
            logger.warning(
                "Scheduled step %s gave up after %s attempt(s): %s",
                step.id,
                step.attempts,
                result.detail,
            )
        self._store.mark_failed(step.id, result.detail or str(result.error), retry_at)


class SchedulerWorker:
    """Background thread polling the scheduler until stopped."""

    def __init__(self, scheduler: StepScheduler, *, poll_seconds: float = 5.0) -> None:
        self._scheduler = scheduler
        self._poll_seconds = poll_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="step-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self._scheduler.dispatch_due()
            except Exception:
                logger.exception("Scheduler poll failed")
            self._stop.wait(self._poll_seconds)


__all__ = ["RETRYABLE", "SchedulerWorker", "StepHandler", "StepScheduler"]
