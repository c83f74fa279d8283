"""Pending human-handoff cases."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..timeutils import UtcDatetime


class EscalationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lead_id: UUID
    tenant_id: UUID
    reason: str
    message: dict[str, Any] = Field(default_factory=dict)
    analysis: dict[str, Any] = Field(default_factory=dict)
    created_at: UtcDatetime


class EscalationList(BaseModel):
    items: list[EscalationRecord]
    total: int


__all__ = ["EscalationList", "EscalationRecord"]
