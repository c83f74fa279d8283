"""Pydantic schemas describing leads and their automation side records."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..timeutils import UtcDatetime


class LeadRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    phone: str
    name: str
    email: str | None = None
    status: str = "New"
    source: str | None = None
    temperature: str | None = None
    score: int = 0
    assigned_coach_id: str | None = None
    notes: str | None = None
    first_message: str | None = None
    first_contact_at: UtcDatetime | None = None
    last_contact_at: UtcDatetime | None = None
    message_count: int = 0
    negative_message_count: int = 0
    is_active: bool = True

    def template_context(self) -> dict[str, Any]:
        """Values exposed to message templates as ``{{lead.*}}``."""

        data = self.model_dump(mode="json")
        data["first_name"] = (self.name or "").split(" ")[0]
        return data


class LeadDefaults(BaseModel):
    """Values written only when a lead is created."""

    name: str
    email: str | None = None
    status: str = "New"
    source: str | None = None
    temperature: str | None = None
    score: int = 0
    first_message: str | None = None
    first_contact_at: UtcDatetime | None = None


class ScoreEventRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lead_id: UUID
    delta: int
    reasons: list[str] = Field(default_factory=list)
    created_at: UtcDatetime


class TaskCreate(BaseModel):
    tenant_id: UUID
    lead_id: UUID
    name: str
    description: str = ""
    assigned_to: str | None = None
    priority: str = "MEDIUM"
    due_at: UtcDatetime
    details: dict[str, Any] = Field(default_factory=dict)


class TaskRecord(TaskCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str = "Pending"


__all__ = [
    "LeadDefaults",
    "LeadRecord",
    "ScoreEventRecord",
    "TaskCreate",
    "TaskRecord",
]
