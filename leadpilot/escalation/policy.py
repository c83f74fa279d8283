"""Decide when a conversation must be handed to a human coach."""

from __future__ import annotations

import logging
from uuid import UUID

from ..ai.schemas import AnalysisResult
from ..config import EscalationSettings
from ..conversations.models import EscalationDecision, NormalizedMessage
from ..events import EventBus, EventType, emit_trigger
from ..leads.repository import LeadRepository
from ..leads.schemas import LeadRecord
from ..messaging.notifications import Notifier
from ..timeutils import utcnow
from .repository import EscalationNotFoundError, EscalationQueue
from .schemas import EscalationRecord

logger = logging.getLogger(__name__)

REASON_NEGATIVE_SENTIMENT = "negative_sentiment"
REASON_URGENT_KEYWORD = "urgent_keyword"
REASON_REPEATED_NEGATIVE = "repeated_negative_messages"


class EscalationPolicy:
    """Threshold checks plus the side effects of escalating.

    Any one of the following escalates: negative sentiment with a score
    below ``negative_sentiment_threshold``; an urgent keyword anywhere in the
    text (case-insensitive substring); the lead's negative message count at
    or above ``negative_message_threshold``.
    """

    def __init__(
        self,
        settings: EscalationSettings,
        queue: EscalationQueue,
        leads: LeadRepository,
        *,
        event_bus: EventBus | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._settings = settings
        self._queue = queue
        self._leads = leads
        self._bus = event_bus
        self._notifier = notifier

    def evaluate(
        self, lead: LeadRecord | None, analysis: AnalysisResult, text: str
    ) -> EscalationDecision:
        if (
            analysis.sentiment == "negative"
            and analysis.sentiment_score < self._settings.negative_sentiment_threshold
        ):
            return EscalationDecision(True, reason=REASON_NEGATIVE_SENTIMENT)
        lowered = (text or "").lower()
        for keyword in self._settings.urgent_keywords:
            if keyword and keyword.lower() in lowered:
                return EscalationDecision(True, reason=f"{REASON_URGENT_KEYWORD}:{keyword}")
        if lead is not None and lead.negative_message_count >= self._settings.negative_message_threshold:
            return EscalationDecision(True, reason=REASON_REPEATED_NEGATIVE)
        return EscalationDecision(False)

    def should_escalate(
        self, lead_id: UUID, analysis: AnalysisResult, message: NormalizedMessage
    ) -> bool:
        return self.check(lead_id, analysis, message).should_escalate

    def check(
        self, lead_id: UUID, analysis: AnalysisResult, message: NormalizedMessage
    ) -> EscalationDecision:
        lead = self._leads.get(lead_id)
        decision = self.evaluate(lead, analysis, message.text)
        if not decision.should_escalate:
            return decision
        tenant_id = message.tenant_id or (lead.tenant_id if lead else None)
        if tenant_id is None:
            logger.warning("Cannot escalate lead %s without a tenant", lead_id)
            return decision
        decision.escalate_to = lead.assigned_coach_id if lead else None
        self._escalate(tenant_id, lead, lead_id, decision, analysis, message)
        return decision

    def _escalate(
        self,
        tenant_id: UUID,
        lead: LeadRecord | None,
        lead_id: UUID,
        decision: EscalationDecision,
        analysis: AnalysisResult,
        message: NormalizedMessage,
    ) -> None:
        record = EscalationRecord(
            lead_id=lead_id,
            tenant_id=tenant_id,
            reason=decision.reason or "unspecified",
            message=message.snapshot(),
            analysis=analysis.snapshot(),
            created_at=utcnow(),
        )
        self._queue.record(record)
        logger.info(
            "Escalated conversation",
            extra={"tenant_id": str(tenant_id), "lead_id": str(lead_id), "reason": record.reason},
        )
        emit_trigger(
            self._bus,
            EventType.ESCALATION_CREATED,
            tenant_id=tenant_id,
            lead_id=lead_id,
            reason=record.reason,
            analysis=record.analysis,
            message=record.message,
            lead=lead.template_context() if lead else {},
        )
        if self._notifier is None:
            return
        name = lead.name if lead else message.phone
        try:
            self._notifier.notify(
                tenant_id,
                f"Conversation with {name} needs attention",
                f"Reason: {record.reason}\nMessage: {message.text}",
            )
        except Exception:
            logger.exception(
                "Escalation notification failed",
                extra={"tenant_id": str(tenant_id), "lead_id": str(lead_id)},
            )

    # Queue operations ----------------------------------------------------------
    def list(self, tenant_id: UUID) -> list[EscalationRecord]:
        return self._queue.list(tenant_id)

    def get(self, tenant_id: UUID, lead_id: UUID) -> EscalationRecord:
        record = self._queue.get(lead_id)
        if record is None or record.tenant_id != tenant_id:
            raise EscalationNotFoundError(f"No pending escalation for lead {lead_id}")
        return record

    def resolve(self, tenant_id: UUID, lead_id: UUID) -> EscalationRecord:
        """Clear the pending escalation and restart the negative message count.

        Without the reset a lead past ``negative_message_threshold`` would
        escalate again on every later message.
        """

        self.get(tenant_id, lead_id)
        record = self._queue.resolve(lead_id)
        try:
            self._leads.reset_negative_count(lead_id)
        except Exception:
            logger.exception(
                "Failed to reset negative message count",
                extra={"tenant_id": str(tenant_id), "lead_id": str(lead_id)},
            )
        emit_trigger(
            self._bus,
            EventType.ESCALATION_RESOLVED,
            tenant_id=tenant_id,
            lead_id=lead_id,
            reason=record.reason,
        )
        return record


__all__ = [
    "EscalationPolicy",
    "REASON_NEGATIVE_SENTIMENT",
    "REASON_REPEATED_NEGATIVE",
    "REASON_URGENT_KEYWORD",
]
