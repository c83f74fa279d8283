"""Domain models used by the conversation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE_NOTE = "voice_note"
    UNKNOWN = "unknown"


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


@dataclass
class NormalizedMessage:
    """Uniform representation of an inbound WhatsApp message."""

    sender: str
    phone: str
    text: str
    message_type: ContentType = ContentType.TEXT
    recipient: str | None = None
    external_id: str | None = None
    sender_name: str | None = None
    media_url: str | None = None
    is_group: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: UUID | None = None

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe copy stored alongside escalations and events."""

        return {
            "sender": self.sender,
            "phone": self.phone,
            "text": self.text,
            "type": self.message_type.value,
            "external_id": self.external_id,
            "media_url": self.media_url,
            "is_group": self.is_group,
            "sent_at": self.sent_at.isoformat(),
        }


@dataclass
class MessageCreate:
    """A message about to be appended to the conversation store."""

    body: str
    direction: Direction
    sent_at: datetime
    sender: str | None = None
    recipient: str | None = None
    external_id: str | None = None
    content_type: ContentType = ContentType.TEXT
    media_url: str | None = None
    is_automated: bool = False
    rule_id: str | None = None

    @classmethod
    def from_inbound(cls, message: NormalizedMessage) -> "MessageCreate":
        return cls(
            body=message.text,
            direction=Direction.INBOUND,
            sent_at=message.sent_at,
            sender=message.sender,
            recipient=message.recipient,
            external_id=message.external_id,
            content_type=message.message_type,
            media_url=message.media_url,
        )


@dataclass
class EscalationDecision:
    should_escalate: bool
    reason: str | None = None
    escalate_to: str | None = None
