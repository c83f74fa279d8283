"""Pydantic schemas for conversation storage and APIs."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..timeutils import UtcDatetime


class MessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    lead_id: UUID
    external_id: str | None = None
    sender: str | None = None
    recipient: str | None = None
    body: str = ""
    content_type: str = "text"
    direction: str
    sent_at: UtcDatetime
    media_url: str | None = None
    is_automated: bool = False
    rule_id: str | None = None


class ConversationHistory(BaseModel):
    lead_id: UUID
    items: list[MessageRecord]
    total: int


class MessageIngestResponse(BaseModel):
    lead_id: UUID
    lead_created: bool
    message_id: UUID | None = None
    escalated: bool = False
    escalation_reason: str | None = None
    scheduled_steps: int = 0
    analysis: dict[str, Any] = Field(default_factory=dict)


class WebhookIngestResponse(BaseModel):
    processed_messages: int
    results: list[MessageIngestResponse]


class ManualMessageRequest(BaseModel):
    phone: str = Field(min_length=3, max_length=64)
    body: str = Field(min_length=1, max_length=4096)


__all__ = [
    "ConversationHistory",
    "ManualMessageRequest",
    "MessageIngestResponse",
    "MessageRecord",
    "WebhookIngestResponse",
]
