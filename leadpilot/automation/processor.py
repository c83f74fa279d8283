"""Generic automation processor bound to the trigger channel."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from pydantic import ValidationError

from ..events import TRIGGER_CHANNEL, EventBus, TriggerEvent
from .actions import ActionContext, ActionRegistry
from .conditions import evaluate_conditions
from .repository import AutomationRuleRepository
from .results import ActionResult, ErrorKind
from .scheduler import StepScheduler
from .schemas import ActionSpec, AutomationRuleRecord, ScheduledStepRecord

logger = logging.getLogger(__name__)

DELAYED_ACTION_KIND = "automation_action"


class AutomationProcessor:
    """Run persisted automation rules for each trigger event.

    Rules matching the event name are processed one after another; inside a
    rule, actions run in ``order``. Any action may fail without affecting
    the ones after it or the remaining rules. Actions with
    ``delay_seconds`` are handed to the step scheduler instead of running
    inline.
    """

    def __init__(
        self,
        rules: AutomationRuleRepository,
        registry: ActionRegistry,
        *,
        scheduler: StepScheduler | None = None,
    ) -> None:
        self._rules = rules
        self._registry = registry
        self._scheduler = scheduler
        if scheduler is not None:
            scheduler.register(DELAYED_ACTION_KIND, self.run_delayed_action)

    def bind(self, bus: EventBus) -> None:
        bus.subscribe(TRIGGER_CHANNEL, self.handle_event)

    def handle_event(self, payload: Any) -> dict[str, list[ActionResult]]:
        """Process one event; returns action results keyed by rule name."""

        try:
            event = payload if isinstance(payload, TriggerEvent) else TriggerEvent.model_validate(payload)
        except ValidationError:
            logger.warning("Ignoring malformed trigger event: %r", payload)
            return {}
        try:
            rules = self._rules.active_for_event(event.event_type, event.tenant_id)
        except Exception:
            logger.exception("Failed to load automation rules", extra={"event": event.event_type})
            return {}
        outcomes: dict[str, list[ActionResult]] = {}
        for rule in rules:
            try:
                outcomes[rule.name] = self.run_rule(rule, event)
            except Exception:
                logger.exception(
                    "Automation rule crashed",
                    extra={"event": event.event_type, "rule": rule.name, "lead_id": str(event.lead_id)},
                )
        return outcomes

    def run_rule(self, rule: AutomationRuleRecord, event: TriggerEvent) -> list[ActionResult]:
        context = ActionContext.for_event(event, rule.name)
        if not evaluate_conditions(rule.trigger_conditions, context.data, logic=rule.trigger_logic):
            logger.debug("Rule %s conditions not met for %s", rule.name, event.event_type)
            return []
        results = []
        for action in rule.ordered_actions():
            results.append(self._run_action(rule, action, context))
        return results

    def _run_action(
        self, rule: AutomationRuleRecord, action: ActionSpec, context: ActionContext
    ) -> ActionResult:
        if not evaluate_conditions(action.conditions, context.data):
            return ActionResult.failure(ErrorKind.SKIPPED_CONDITION, "conditions not met")
        if action.delay_seconds and self._scheduler is not None:
            return self._defer(rule, action, context)
        return self.execute_action(action, context)

    def execute_action(self, action: ActionSpec, context: ActionContext) -> ActionResult:
        try:
            result = self._registry.execute(action, context)
        except Exception as exc:
            logger.exception(
                "Automation action failed",
                extra={
                    "event": context.event.event_type,
                    "lead_id": str(context.lead_id),
                    "action_type": action.type,
                    "rule": context.rule_name,
                },
            )
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))
        if not result.ok and not result.skipped:
            logger.info(
                "Action %s did not complete: %s",
                action.type,
                result.detail,
                extra={"event": context.event.event_type, "rule": context.rule_name},
            )
        return result

    def _defer(
        self, rule: AutomationRuleRecord, action: ActionSpec, context: ActionContext
    ) -> ActionResult:
        tenant_id = context.tenant_id
        if tenant_id is None:
            return ActionResult.failure(ErrorKind.MISSING_DATA, "delayed action needs a tenant")
        step = self._scheduler.schedule(
            tenant_id=tenant_id,
            kind=DELAYED_ACTION_KIND,
            delay=timedelta(seconds=action.delay_seconds),
            payload={
                "action": action.model_dump(mode="json"),
                "event": context.event.model_dump(mode="json"),
                "data": context.data,
            },
            lead_id=context.lead_id,
            rule_id=rule.name,
        )
        return ActionResult.success("scheduled", step_id=str(step.id))

    def run_delayed_action(self, step: ScheduledStepRecord) -> ActionResult:
        try:
            action = ActionSpec.model_validate(step.payload["action"])
            event = TriggerEvent.model_validate(step.payload["event"])
        except (KeyError, ValidationError) as exc:
            return ActionResult.failure(ErrorKind.MISSING_DATA, f"corrupt delayed action: {exc}")
        context = ActionContext(event=event, data=dict(step.payload.get("data") or {}), rule_name=step.rule_id)
        return self.execute_action(action, context)


__all__ = ["AutomationProcessor", "DELAYED_ACTION_KIND"]
