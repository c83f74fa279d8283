"""Event envelopes published on the trigger channel."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..timeutils import UtcDatetime, utcnow

#: Exchange carrying every lifecycle event consumed by automation rules.
TRIGGER_CHANNEL = "trigger"


class EventType(str, Enum):
    """Lifecycle events emitted by the conversation pipeline."""

    LEAD_CREATED = "lead_created"
    LEAD_STATUS_CHANGED = "lead_status_changed"
    WHATSAPP_MESSAGE_RECEIVED = "whatsapp_message_received"
    ESCALATION_CREATED = "escalation_created"
    ESCALATION_RESOLVED = "escalation_resolved"


class TriggerEvent(BaseModel):
    """Structured envelope around a free-form payload.

    ``event_type`` is a plain string so that automation rules can react to
    event names this process does not define; :class:`EventType` lists the
    ones emitted here.
    """

    event_type: str
    tenant_id: Optional[UUID] = None
    lead_id: Optional[UUID] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    def context(self) -> dict[str, Any]:
        """Flattened view used for condition evaluation and templates.

        Payload keys win over envelope fields except for the identifiers,
        which always reflect the envelope.
        """

        data: dict[str, Any] = dict(self.payload)
        data["event_type"] = self.event_type
        data["timestamp"] = self.timestamp.isoformat()
        if self.tenant_id is not None:
            data["tenant_id"] = str(self.tenant_id)
        if self.lead_id is not None:
            data["lead_id"] = str(self.lead_id)
        return data


def build_event(
    event_type: EventType | str,
    *,
    tenant_id: UUID | None = None,
    lead_id: UUID | None = None,
    timestamp: datetime | None = None,
    **payload: Any,
) -> TriggerEvent:
    name = event_type.value if isinstance(event_type, EventType) else event_type
    event = TriggerEvent(
        event_type=name, tenant_id=tenant_id, lead_id=lead_id, payload=payload
    )
    if timestamp is not None:
        event.timestamp = timestamp
    return event


__all__ = ["EventType", "TRIGGER_CHANNEL", "TriggerEvent", "build_event"]
