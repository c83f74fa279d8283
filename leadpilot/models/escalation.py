"""Pending human-handoff cases, one row per lead."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from ._columns import utcnow


class Escalation(Base):
    __tablename__ = "escalations"
    __table_args__ = (Index("ix_escalations_tenant", "tenant_id"),)

    lead_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    reason: Mapped[str] = mapped_column(String(length=128), nullable=False)
    message: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    analysis: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = ["Escalation"]
