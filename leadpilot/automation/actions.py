"""Action handlers executed by the generic automation processor.

Each handler is registered under an action-type tag and implements
``execute(config, context) -> ActionResult``. New action types plug into
:class:`ActionRegistry` without touching the processor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Protocol
from uuid import UUID

from ..ai.client import AnalysisClient, CopyWriter
from ..conversations.models import Direction, MessageCreate
from ..conversations.repository import ConversationRepository
from ..events import EventBus, EventType, TriggerEvent, emit_trigger
from ..leads.repository import LeadNotFoundError, LeadRepository
from ..leads.schemas import TaskCreate
from ..messaging.notifications import Notifier, OutboundSender
from ..messaging.transport import MessageTransport, TransportError
from ..templating import render, resolve_path
from ..timeutils import utcnow
from .results import ActionResult, ErrorKind
from .schemas import ActionSpec

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    """State shared by the actions of one rule run.

    ``data`` starts as the flattened event payload; AI actions add keys to it
    so later actions in the same rule can reference their output.
    """

    event: TriggerEvent
    data: dict[str, Any] = field(default_factory=dict)
    rule_name: str | None = None

    @classmethod
    def for_event(cls, event: TriggerEvent, rule_name: str | None = None) -> "ActionContext":
        return cls(event=event, data=event.context(), rule_name=rule_name)

    @property
    def tenant_id(self) -> UUID | None:
        return self.event.tenant_id or _as_uuid(self.data.get("tenant_id"))

    @property
    def lead_id(self) -> UUID | None:
        return self.event.lead_id or _as_uuid(
            self.data.get("lead_id") or resolve_path(self.data, "lead.id")
        )

    def render(self, template: Any) -> Any:
        return render(template, self.data)


def _as_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


class ActionHandler(Protocol):
    action_type: str

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult: ...


class ActionRegistry:
    def __init__(self) -> None:
        self._handlers: dict[str, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        self._handlers[handler.action_type.upper()] = handler

    def types(self) -> list[str]:
        return sorted(self._handlers)

    def execute(self, action: ActionSpec, context: ActionContext) -> ActionResult:
        handler = self._handlers.get(action.type)
        if handler is None:
            logger.warning(
                "Skipping unknown action type %s",
                action.type,
                extra={"event": context.event.event_type, "rule": context.rule_name},
            )
            return ActionResult.failure(ErrorKind.UNKNOWN_ACTION, f"unknown action {action.type}")
        return handler.execute(action.config, context)


def _missing(context: ActionContext, action_type: str, detail: str) -> ActionResult:
    logger.warning(
        "%s skipped: %s",
        action_type,
        detail,
        extra={
            "event": context.event.event_type,
            "tenant_id": str(context.tenant_id),
            "lead_id": str(context.lead_id),
        },
    )
    return ActionResult.failure(ErrorKind.MISSING_DATA, detail)


# ---------------------------------------------------------------------------
# Messaging


class SendWhatsAppAction:
    action_type = "SEND_WHATSAPP"

    def __init__(
        self,
        transport: MessageTransport,
        conversations: ConversationRepository | None = None,
    ) -> None:
        self._transport = transport
        self._conversations = conversations

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        tenant_id = context.tenant_id
        if tenant_id is None:
            return _missing(context, self.action_type, "no tenant id")
        recipient_field = config.get("recipient_field") or config.get("phone_field") or "lead.phone"
        recipient = resolve_path(context.data, recipient_field)
        if not recipient:
            return _missing(context, self.action_type, f"no recipient at {recipient_field}")
        template = config.get("message") or config.get("template")
        if not template:
            return _missing(context, self.action_type, "no message template")
        if not self._transport.is_connected(tenant_id):
            logger.warning("WhatsApp not connected for tenant %s; skipping send", tenant_id)
            return ActionResult.failure(ErrorKind.TRANSIENT, "WhatsApp session not connected")
        body = context.render(template)
        try:
            receipt = self._transport.send(tenant_id, str(recipient), body)
        except TransportError as exc:
            logger.warning("WhatsApp send failed: %s", exc)
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))
        lead_id = context.lead_id
        if self._conversations is not None and lead_id is not None:
            try:
                self._conversations.save(
                    tenant_id,
                    lead_id,
                    MessageCreate(
                        body=body,
                        direction=Direction.OUTBOUND,
                        sent_at=receipt.sent_at,
                        recipient=str(recipient),
                        external_id=receipt.message_id,
                        is_automated=True,
                        rule_id=context.rule_name,
                    ),
                )
            except Exception as exc:
                logger.exception("Failed to store automated WhatsApp message")
                return ActionResult.failure(ErrorKind.PERSISTENCE, str(exc))
        return ActionResult.success("sent", message_id=receipt.message_id)


class _TemplatedSender:
    action_type = ""
    default_field = ""

    def __init__(self, sender: OutboundSender | None) -> None:
        self._sender = sender

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        if self._sender is None:
            return _missing(context, self.action_type, "no sender configured")
        tenant_id = context.tenant_id
        if tenant_id is None:
            return _missing(context, self.action_type, "no tenant id")
        to = config.get("to") or resolve_path(
            context.data, config.get("recipient_field") or self.default_field
        )
        if not to:
            return _missing(context, self.action_type, "no recipient")
        body = config.get("body") or config.get("message") or config.get("template")
        if not body:
            return _missing(context, self.action_type, "no body template")
        try:
            self._sender.send(
                tenant_id, context.render(to), context.render(config.get("subject")), context.render(body)
            )
        except Exception as exc:
            logger.warning("%s delivery failed: %s", self.action_type, exc)
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))
        return ActionResult.success("queued")


class CreateEmailAction(_TemplatedSender):
    action_type = "CREATE_EMAIL_MESSAGE"
    default_field = "lead.email"


class CreateSmsAction(_TemplatedSender):
    action_type = "CREATE_SMS_MESSAGE"
    default_field = "lead.phone"


class SendNotificationAction:
    action_type = "SEND_NOTIFICATION"

    def __init__(self, notifier: Notifier | None) -> None:
        self._notifier = notifier

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        if self._notifier is None:
            return _missing(context, self.action_type, "no notifier configured")
        tenant_id = context.tenant_id
        if tenant_id is None:
            return _missing(context, self.action_type, "no tenant id")
        subject = context.render(config.get("subject") or config.get("title") or context.event.event_type)
        body = context.render(config.get("body") or config.get("message") or "")
        try:
            self._notifier.notify(tenant_id, subject, body)
        except Exception as exc:
            logger.warning("Notification failed: %s", exc)
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))
        return ActionResult.success("notified")


# ---------------------------------------------------------------------------
# Lead mutations


class _LeadAction:
    action_type = ""

    def __init__(self, leads: LeadRepository) -> None:
        self._leads = leads

    def _lead_id(self, context: ActionContext) -> UUID | None:
        return context.lead_id


class UpdateLeadStatusAction(_LeadAction):
    action_type = "UPDATE_LEAD_STATUS"

    def __init__(self, leads: LeadRepository, event_bus: EventBus | None = None) -> None:
        super().__init__(leads)
        self._bus = event_bus

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        status = context.render(config.get("status") or config.get("new_status"))
        if not status:
            return _missing(context, self.action_type, "no status configured")
        lead_id = self._lead_id(context)
        if lead_id is None:
            return _missing(context, self.action_type, "no lead id")
        try:
            lead, previous = self._leads.set_status(lead_id, status)
        except LeadNotFoundError:
            return _missing(context, self.action_type, f"lead {lead_id} not found")
        if previous != status:
            emit_trigger(
                self._bus,
                EventType.LEAD_STATUS_CHANGED,
                tenant_id=lead.tenant_id,
                lead_id=lead.id,
                previous_status=previous,
                new_status=status,
                lead=lead.template_context(),
            )
        return ActionResult.success(f"{previous} -> {status}", status=status)


class AssignLeadToCoachAction(_LeadAction):
    action_type = "ASSIGN_LEAD_TO_COACH"

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        coach_id = context.render(config.get("coach_id") or config.get("assigned_to"))
        if not coach_id:
            return _missing(context, self.action_type, "no coach configured")
        lead_id = self._lead_id(context)
        if lead_id is None:
            return _missing(context, self.action_type, "no lead id")
        try:
            self._leads.assign_coach(lead_id, str(coach_id))
        except LeadNotFoundError:
            return _missing(context, self.action_type, f"lead {lead_id} not found")
        return ActionResult.success("assigned", coach_id=str(coach_id))


class AddNoteToLeadAction(_LeadAction):
    action_type = "ADD_NOTE_TO_LEAD"

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        text = context.render(config.get("note") or config.get("content"))
        if not text:
            return _missing(context, self.action_type, "no note text")
        lead_id = self._lead_id(context)
        if lead_id is None:
            return _missing(context, self.action_type, "no lead id")
        note_type = str(config.get("note_type") or "AUTOMATION").upper()
        note = f"[{note_type}] {utcnow().isoformat()}: {text}"
        try:
            self._leads.append_note(lead_id, note)
        except LeadNotFoundError:
            return _missing(context, self.action_type, f"lead {lead_id} not found")
        return ActionResult.success("noted", note=note)


class CreateTaskAction(_LeadAction):
    action_type = "CREATE_TASK"

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        tenant_id, lead_id = context.tenant_id, self._lead_id(context)
        if tenant_id is None or lead_id is None:
            return _missing(context, self.action_type, "task needs a tenant and a lead")
        name = context.render(config.get("name") or config.get("title") or "Follow up")
        try:
            due_in_days = float(config.get("due_in_days", 7))
        except (TypeError, ValueError):
            due_in_days = 7.0
        try:
            task = self._leads.create_task(
                TaskCreate(
                    tenant_id=tenant_id,
                    lead_id=lead_id,
                    name=name,
                    description=context.render(config.get("description") or ""),
                    assigned_to=context.render(config.get("assigned_to")),
                    priority=str(config.get("priority") or "MEDIUM").upper(),
                    due_at=utcnow() + timedelta(days=due_in_days),
                    details={"event_type": context.event.event_type, "rule": context.rule_name},
                )
            )
        except LeadNotFoundError:
            return _missing(context, self.action_type, f"lead {lead_id} not found")
        return ActionResult.success("task created", task_id=str(task.id))


# ---------------------------------------------------------------------------
# AI enrichment


class AIGenerateCopyAction:
    action_type = "AI_GENERATE_COPY"

    def __init__(self, writer: CopyWriter | None) -> None:
        self._writer = writer

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        if self._writer is None:
            return _missing(context, self.action_type, "no AI copy service configured")
        prompt = context.render(config.get("prompt") or "")
        if not prompt:
            return _missing(context, self.action_type, "no prompt")
        try:
            copy = self._writer.generate_copy(prompt, context.data)
        except Exception as exc:
            logger.warning("AI copy generation failed: %s", exc)
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))
        context.data["generated_copy"] = copy
        return ActionResult.success("copy generated", generated_copy=copy)


class AIDetectSentimentAction:
    action_type = "AI_DETECT_SENTIMENT"

    def __init__(self, analysis: AnalysisClient) -> None:
        self._analysis = analysis

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        path = config.get("text_field") or "message.text"
        text = resolve_path(context.data, path) or context.data.get("text")
        if not text:
            return _missing(context, self.action_type, f"no text at {path}")
        result = self._analysis.analyze(str(text)).snapshot()
        context.data["detected_sentiment"] = result
        return ActionResult.success(result["sentiment"], detected_sentiment=result)


class AIScoreLeadAction:
    action_type = "AI_SCORE_LEAD"

    def __init__(self, writer: CopyWriter | None, leads: LeadRepository) -> None:
        self._writer = writer
        self._leads = leads

    def execute(self, config: dict[str, Any], context: ActionContext) -> ActionResult:
        if self._writer is None:
            return _missing(context, self.action_type, "no AI scoring service configured")
        lead_id = context.lead_id
        lead = self._leads.get(lead_id) if lead_id else None
        if lead is None:
            return _missing(context, self.action_type, "lead not found")
        try:
            insights = dict(self._writer.score_lead(lead.template_context()))
        except Exception as exc:
            logger.warning("AI lead scoring failed: %s", exc)
            return ActionResult.failure(ErrorKind.TRANSIENT, str(exc))
        context.data["lead_insights"] = insights
        return ActionResult.success("lead scored", lead_insights=insights)


def build_registry(
    *,
    leads: LeadRepository,
    transport: MessageTransport,
    analysis: AnalysisClient,
    conversations: ConversationRepository | None = None,
    writer: CopyWriter | None = None,
    notifier: Notifier | None = None,
    email_sender: OutboundSender | None = None,
    sms_sender: OutboundSender | None = None,
    event_bus: EventBus | None = None,
) -> ActionRegistry:
    """Registry holding every built-in action type."""

    registry = ActionRegistry()
    for handler in (
        SendWhatsAppAction(transport, conversations),
        CreateTaskAction(leads),
        UpdateLeadStatusAction(leads, event_bus),
        AssignLeadToCoachAction(leads),
        AddNoteToLeadAction(leads),
        CreateEmailAction(email_sender),
        CreateSmsAction(sms_sender),
        SendNotificationAction(notifier),
        AIGenerateCopyAction(writer),
        AIDetectSentimentAction(analysis),
        AIScoreLeadAction(writer, leads),
    ):
        registry.register(handler)
    return registry


__all__ = [
    "ActionContext",
    "ActionHandler",
    "ActionRegistry",
    "build_registry",
]
