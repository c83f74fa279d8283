"""Conversation message model (append-only)."""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from ._columns import created_at_column, uuid_pk


class Message(Base):
    """One inbound or outbound unit of conversation. Rows are never updated."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_tenant_lead_sent", "tenant_id", "lead_id", "sent_at"),
        Index("ix_messages_external_id", "external_id"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    lead_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    external_id: Mapped[str | None] = mapped_column(String(length=128))
    sender: Mapped[str | None] = mapped_column(String(length=128))
    recipient: Mapped[str | None] = mapped_column(String(length=128))
    body: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    content_type: Mapped[str] = mapped_column(String(length=32), nullable=False, default="text")
    direction: Mapped[str] = mapped_column(String(length=16), nullable=False)
    sent_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    media_url: Mapped[str | None] = mapped_column(Text())
    is_automated: Mapped[bool] = mapped_column(nullable=False, default=False)
    rule_id: Mapped[str | None] = mapped_column(String(length=64))
    created_at: Mapped[dt.datetime] = created_at_column()


__all__ = ["Message"]
