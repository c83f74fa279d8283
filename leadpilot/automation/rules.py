"""Conversation rules: delayed, templated reply sequences."""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from ..ai.schemas import AnalysisResult
from ..conversations.models import Direction, MessageCreate, NormalizedMessage
from ..conversations.repository import ConversationRepository
from ..leads.repository import LeadRepository
from ..leads.schemas import LeadRecord
from ..messaging.transport import MessageTransport, TransportError
from ..templating import render
from .repository import ConversationRuleRepository, RuleConflictError
from .results import ActionResult, ErrorKind
from .scheduler import StepScheduler
from .schemas import (
    ConversationRuleCreate,
    ConversationRuleRecord,
    ConversationTrigger,
    RuleStep,
    ScheduledStepRecord,
)

logger = logging.getLogger(__name__)

STEP_KIND = "conversation_step"

_MINUTE_MS = 60 * 1000
_DAY_MS = 24 * 60 * _MINUTE_MS

DEFAULT_RULES: tuple[ConversationRuleCreate, ...] = (
    ConversationRuleCreate(
        key="welcome_sequence",
        name="Welcome Sequence",
        description="Greets a new contact and follows up twice.",
        trigger=ConversationTrigger.FIRST_MESSAGE,
        steps=[
            RuleStep(
                delay_ms=0,
                message="Hi {{lead.name}}! Welcome to our community. How can I help you today?",
            ),
            RuleStep(
                delay_ms=5 * _MINUTE_MS,
                message="Just checking in - did you have a chance to review our services?",
            ),
            RuleStep(
                delay_ms=_DAY_MS,
                message="Hi {{lead.name}}! We'd love to help you achieve your goals. Ready to get started?",
            ),
        ],
    ),
    ConversationRuleCreate(
        key="negative_sentiment_response",
        name="Negative Sentiment Response",
        description="Acknowledges an unhappy contact.",
        trigger=ConversationTrigger.NEGATIVE_SENTIMENT,
        steps=[
            RuleStep(
                delay_ms=0,
                message="I understand your concern. Let me help you with this. What specific issue are you facing?",
            ),
            RuleStep(
                delay_ms=5 * _MINUTE_MS,
                message="I'm here to support you. Let's work together to find a solution.",
            ),
        ],
    ),
)


def rule_matches(
    rule: ConversationRuleRecord,
    message: NormalizedMessage,
    analysis: AnalysisResult,
    *,
    is_first_message: bool,
) -> bool:
    if rule.trigger is ConversationTrigger.FIRST_MESSAGE:
        return is_first_message
    if rule.trigger is ConversationTrigger.NEGATIVE_SENTIMENT:
        return analysis.sentiment == "negative"
    if rule.trigger is ConversationTrigger.URGENT_MESSAGE:
        return analysis.urgency == "high"
    if rule.trigger is ConversationTrigger.KEYWORD_MATCH:
        text = (message.text or "").lower()
        return any(keyword in text for keyword in rule.keywords)
    return False


class ConversationRuleEngine:
    """Match conversation rules and schedule their steps.

    Every step of a matching rule is scheduled at ``fired_at + delay``;
    steps never wait on each other. Matching rules all fire; there is no
    priority or de-duplication between them.
    """

    def __init__(
        self,
        rules: ConversationRuleRepository,
        scheduler: StepScheduler,
        *,
        leads: LeadRepository,
        transport: MessageTransport,
        conversations: ConversationRepository,
        seed_defaults: bool = True,
    ) -> None:
        self._rules = rules
        self._scheduler = scheduler
        self._leads = leads
        self._transport = transport
        self._conversations = conversations
        self._seed_defaults = seed_defaults
        scheduler.register(STEP_KIND, self.deliver_step)

    # Rule management ---------------------------------------------------------
    def ensure_defaults(self, tenant_id: UUID) -> list[ConversationRuleRecord]:
        """Create any default rule the tenant does not have yet."""

        self._rules.claim_default_seed(tenant_id)
        created = []
        for rule in DEFAULT_RULES:
            try:
                created.append(self._rules.create(tenant_id, rule))
            except RuleConflictError:
                continue
        if created:
            logger.info("Seeded %d default conversation rule(s) for tenant %s", len(created), tenant_id)
        return created

    def active_rules(self, tenant_id: UUID) -> list[ConversationRuleRecord]:
        """Active rules for the tenant, seeding the defaults on first use.

        Seeding happens at most once per tenant, so a tenant that deletes
        every rule keeps an empty rule set.
        """

        rules = self._rules.list(tenant_id)
        if not rules and self._seed_defaults and self._rules.claim_default_seed(tenant_id):
            self.ensure_defaults(tenant_id)
            rules = self._rules.list(tenant_id)
        return [rule for rule in rules if rule.is_active]

    # Matching and scheduling ---------------------------------------------------
    def process(
        self,
        tenant_id: UUID,
        lead: LeadRecord,
        message: NormalizedMessage,
        analysis: AnalysisResult,
        *,
        is_first_message: bool = False,
    ) -> list[ScheduledStepRecord]:
        fired_at = self._scheduler.now()
        scheduled: list[ScheduledStepRecord] = []
        for rule in self.active_rules(tenant_id):
            if not rule_matches(rule, message, analysis, is_first_message=is_first_message):
                continue
            logger.info(
                "Conversation rule matched",
                extra={"tenant_id": str(tenant_id), "lead_id": str(lead.id), "rule_id": rule.key},
            )
            for index, step in enumerate(rule.steps):
                try:
                    scheduled.append(
                        self._scheduler.schedule(
                            tenant_id=tenant_id,
                            kind=STEP_KIND,
                            delay=timedelta(milliseconds=step.delay_ms),
                            payload={"message": step.message, "rule_name": rule.name},
                            lead_id=lead.id,
                            rule_id=rule.key,
                            step_index=index,
                            base_time=fired_at,
                        )
                    )
                except Exception:
                    logger.exception(
                        "Failed to schedule conversation step",
                        extra={
                            "tenant_id": str(tenant_id),
                            "lead_id": str(lead.id),
                            "rule_id": rule.key,
                            "step_index": index,
                        },
                    )
        return scheduled

    # Delivery -------------------------------------------------------------------
    def deliver_step(self, step: ScheduledStepRecord) -> ActionResult:
        """Render and send one scheduled step, then store it as outbound."""

        template = step.payload.get("message")
        if not template:
            return ActionResult.failure(ErrorKind.MISSING_DATA, "step has no message template")
        lead = self._leads.get(step.lead_id) if step.lead_id else None
        if lead is None:
            logger.warning("Dropping step %s: lead %s not found", step.id, step.lead_id)
            return ActionResult.failure(ErrorKind.MISSING_DATA, "lead not found")
        if not self._transport.is_connected(step.tenant_id):
            return ActionResult.failure(ErrorKind.TRANSIENT, "WhatsApp session not connected")
        body = render(template, {"lead": lead.template_context(), "tenant_id": str(step.tenant_id)})
        try:
            receipt = self._transport.send(step.tenant_id, lead.phone, body)
        except TransportError as exc:
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))
        try:
            stored = self._conversations.save(
                step.tenant_id,
                lead.id,
                MessageCreate(
                    body=body,
                    direction=Direction.OUTBOUND,
                    sent_at=receipt.sent_at,
                    recipient=lead.phone,
                    external_id=receipt.message_id,
                    is_automated=True,
                    rule_id=step.rule_id,
                ),
            )
        except Exception as exc:
            logger.exception(
                "Sent automated message but failed to store it",
                extra={"tenant_id": str(step.tenant_id), "lead_id": str(lead.id), "rule_id": step.rule_id},
            )
            return ActionResult.failure(ErrorKind.PERSISTENCE, f"message sent but not stored: {exc}")
        return ActionResult.success("sent", message_id=str(stored.id))


__all__ = [
    "ConversationRuleEngine",
    "DEFAULT_RULES",
    "STEP_KIND",
    "rule_matches",
]
