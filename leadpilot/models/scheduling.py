"""Durable delayed jobs for automation steps."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from ._columns import created_at_column, uuid_pk


class ScheduledStep(Base):
    """A unit of deferred work polled by the step scheduler.

    ``kind`` selects the handler (a conversation reply step or a delayed
    generic automation action); ``payload`` carries whatever that handler
    needs to run without the originating request.
    """

    __tablename__ = "scheduled_steps"
    __table_args__ = (Index("ix_scheduled_steps_status_due", "status", "due_at"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    kind: Mapped[str] = mapped_column(String(length=32), nullable=False)
    rule_id: Mapped[str | None] = mapped_column(String(length=64))
    step_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    due_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(length=16), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text())
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = created_at_column()


__all__ = ["ScheduledStep"]
