"""High-level conversation flow orchestration."""

from __future__ import annotations

import logging
from uuid import UUID

from ..ai.client import AnalysisClient
from ..automation.rules import ConversationRuleEngine
from ..automation.scheduler import StepScheduler
from ..escalation.policy import EscalationPolicy
from ..events import EventBus, EventType, emit_trigger
from ..leads.repository import LeadNotFoundError, LeadRepository
from ..leads.resolver import LeadResolver
from ..leads.scoring import LeadScoringUpdater
from ..messaging.transport import MessageTransport, TransportError
from ..timeutils import utcnow
from . import schemas
from .models import ContentType, Direction, EscalationDecision, MessageCreate, NormalizedMessage
from .repository import ConversationRepository

logger = logging.getLogger(__name__)


def normalize_phone(phone: str) -> str:
    return "".join(ch for ch in phone if ch.isdigit())


class ConversationService:
    """Run inbound WhatsApp messages through the automation pipeline.

    normalize -> resolve lead -> analyse -> score -> escalate? -> conversation
    rules -> persist. Each stage is best effort: a failure is logged and the
    remaining stages still run. Escalation skips the conversation rules but
    the inbound message is always stored.
    """

    def __init__(
        self,
        *,
        conversations: ConversationRepository,
        leads: LeadRepository,
        resolver: LeadResolver,
        analysis: AnalysisClient,
        scoring: LeadScoringUpdater,
        escalation: EscalationPolicy,
        rules: ConversationRuleEngine,
        scheduler: StepScheduler,
        transport: MessageTransport,
        event_bus: EventBus | None = None,
    ) -> None:
        self._conversations = conversations
        self._leads = leads
        self._resolver = resolver
        self._analysis = analysis
        self._scoring = scoring
        self._escalation = escalation
        self._rules = rules
        self._scheduler = scheduler
        self._transport = transport
        self._bus = event_bus

    # ------------------------------------------------------------------
    # Incoming message processing

    def handle_incoming(
        self, tenant_id: UUID, message: NormalizedMessage
    ) -> schemas.MessageIngestResponse:
        message.tenant_id = tenant_id
        log_extra = {"tenant_id": str(tenant_id), "external_id": message.external_id}

        resolution = self._resolver.resolve(tenant_id, message.phone, message)
        lead = resolution.lead
        log_extra["lead_id"] = str(lead.id)

        analysis = self._analysis.analyze(message.text)
        score = self._scoring.apply_interaction_score(lead.id, analysis)
        lead = score.data.get("lead") or lead

        try:
            decision = self._escalation.check(lead.id, analysis, message)
        except Exception:
            logger.exception("Escalation check failed", extra=log_extra)
            decision = EscalationDecision(False)

        scheduled = []
        if decision.should_escalate:
            logger.info("Skipping conversation rules for escalated message", extra=log_extra)
        elif message.is_group:
            logger.debug("Skipping conversation rules for group message", extra=log_extra)
        else:
            try:
                scheduled = self._rules.process(
                    tenant_id, lead, message, analysis, is_first_message=resolution.created
                )
            except Exception:
                logger.exception("Conversation rule processing failed", extra=log_extra)

        stored = None
        try:
            stored = self._conversations.save(tenant_id, lead.id, MessageCreate.from_inbound(message))
        except Exception:
            logger.exception("Failed to store inbound message", extra=log_extra)

        emit_trigger(
            self._bus,
            EventType.WHATSAPP_MESSAGE_RECEIVED,
            tenant_id=tenant_id,
            lead_id=lead.id,
            message=message.snapshot(),
            text=message.text,
            analysis=analysis.snapshot(),
            lead=lead.template_context(),
            escalated=decision.should_escalate,
            is_first_message=resolution.created,
        )

        if scheduled:
            try:
                self._scheduler.dispatch_due()
            except Exception:
                logger.exception("Immediate step dispatch failed", extra=log_extra)

        return schemas.MessageIngestResponse(
            lead_id=lead.id,
            lead_created=resolution.created,
            message_id=stored.id if stored else None,
            escalated=decision.should_escalate,
            escalation_reason=decision.reason,
            scheduled_steps=len(scheduled),
            analysis=analysis.snapshot(),
        )

    # ------------------------------------------------------------------
    # Outbound

    def send_manual_message(
        self, tenant_id: UUID, phone: str, body: str
    ) -> schemas.MessageRecord:
        """Send a coach-authored message and store it as non-automated."""

        phone = normalize_phone(phone)
        if not phone:
            raise ValueError("phone must contain digits")
        if not self._transport.is_connected(tenant_id):
            raise TransportError(f"WhatsApp session for tenant {tenant_id} is not connected")
        placeholder = NormalizedMessage(
            sender=phone, phone=phone, text=body, message_type=ContentType.TEXT, sent_at=utcnow()
        )
        lead = self._resolver.resolve(
            tenant_id, phone, placeholder, status="Contacted", record_activity=False
        ).lead
        receipt = self._transport.send(tenant_id, phone, body)
        return self._conversations.save(
            tenant_id,
            lead.id,
            MessageCreate(
                body=body,
                direction=Direction.OUTBOUND,
                sent_at=receipt.sent_at,
                recipient=phone,
                external_id=receipt.message_id,
                is_automated=False,
            ),
        )

    # ------------------------------------------------------------------
    # Queries

    def history(
        self, tenant_id: UUID, lead_id: UUID, limit: int = 50
    ) -> schemas.ConversationHistory:
        lead = self._leads.get(lead_id)
        if lead is None or lead.tenant_id != tenant_id:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        items = self._conversations.history(tenant_id, lead_id, limit=limit)
        return schemas.ConversationHistory(lead_id=lead_id, items=items, total=len(items))


__all__ = ["ConversationService", "normalize_phone"]
