"""Lead-related SQLAlchemy models.

A lead is a tenant-scoped contact identified by phone number. The unique
``(tenant_id, phone)`` index is what makes first-contact creation an atomic
upsert rather than a read-then-write.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, List

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base
from ._columns import created_at_column, updated_at_column, utcnow, uuid_pk


class Lead(Base):
    """A prospective client tracked per tenant.

    Attributes:
        score: Cumulative interaction score; may go negative.
        message_count: Inbound messages received on the channel.
        negative_message_count: Inbound messages analysed as negative.
        first_message: Content of the message that created the lead.
    """

    __tablename__ = "leads"
    __table_args__ = (
        Index("ix_leads_tenant_phone_unique", "tenant_id", "phone", unique=True),
        Index("ix_leads_tenant_status", "tenant_id", "status"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    phone: Mapped[str] = mapped_column(String(length=64), nullable=False)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(length=320))
    status: Mapped[str] = mapped_column(
        String(length=32), nullable=False, default="New", server_default=text("'New'")
    )
    source: Mapped[str | None] = mapped_column(String(length=64))
    temperature: Mapped[str | None] = mapped_column(String(length=16))
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_coach_id: Mapped[str | None] = mapped_column(String(length=64))
    notes: Mapped[str | None] = mapped_column(Text())
    first_message: Mapped[str | None] = mapped_column(Text())
    first_contact_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    last_contact_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    negative_message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[dt.datetime] = created_at_column()
    updated_at: Mapped[dt.datetime] = updated_at_column()

    score_events: Mapped[List["LeadScoreEvent"]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LeadScoreEvent.created_at",
    )


class LeadScoreEvent(Base):
    """Append-only explanation trail for score changes."""

    __tablename__ = "lead_score_events"
    __table_args__ = (Index("ix_lead_score_events_lead", "lead_id"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    lead_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reasons: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    lead: Mapped[Lead] = relationship(back_populates="score_events")


class LeadTask(Base):
    """Follow-up task created by an automation action."""

    __tablename__ = "lead_tasks"
    __table_args__ = (Index("ix_lead_tasks_tenant_lead", "tenant_id", "lead_id"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    lead_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    assigned_to: Mapped[str | None] = mapped_column(String(length=64))
    priority: Mapped[str] = mapped_column(String(length=16), nullable=False, default="MEDIUM")
    status: Mapped[str] = mapped_column(String(length=16), nullable=False, default="Pending")
    due_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[dt.datetime] = created_at_column()


__all__ = ["Lead", "LeadScoreEvent", "LeadTask"]
