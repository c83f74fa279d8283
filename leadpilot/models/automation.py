"""Automation rule models.

Two rule families live here:

- :class:`AutomationRule` reacts to lifecycle events published on the event
  bus and runs an ordered list of typed actions.
- :class:`ConversationRule` reacts to inbound WhatsApp messages and schedules
  an ordered list of delayed, templated reply steps.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, List

from sqlalchemy import JSON, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from ._columns import created_at_column, updated_at_column, uuid_pk


class AutomationRule(Base):
    """Persisted trigger-event to actions mapping."""

    __tablename__ = "automation_rules"
    __table_args__ = (
        Index("ix_automation_rules_tenant_name_unique", "tenant_id", "name", unique=True),
        Index("ix_automation_rules_trigger", "trigger_event", "is_active"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    trigger_event: Mapped[str] = mapped_column(String(length=64), nullable=False)
    trigger_conditions: Mapped[List[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    trigger_logic: Mapped[str] = mapped_column(
        String(length=3), nullable=False, default="AND", server_default=text("'AND'")
    )
    actions: Mapped[List[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[dt.datetime] = created_at_column()
    updated_at: Mapped[dt.datetime] = updated_at_column()


class ConversationRule(Base):
    """Chat-specific rule producing delayed reply sequences."""

    __tablename__ = "conversation_rules"
    __table_args__ = (
        Index("ix_conversation_rules_tenant_key_unique", "tenant_id", "key", unique=True),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    key: Mapped[str] = mapped_column(String(length=64), nullable=False)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    trigger: Mapped[str] = mapped_column(String(length=32), nullable=False)
    keywords: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    steps: Mapped[List[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[dt.datetime] = created_at_column()
    updated_at: Mapped[dt.datetime] = updated_at_column()


class ConversationRuleSeed(Base):
    """Marks a tenant whose default conversation rules were already seeded."""

    __tablename__ = "conversation_rule_seeds"

    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    seeded_at: Mapped[dt.datetime] = created_at_column()


__all__ = ["AutomationRule", "ConversationRule", "ConversationRuleSeed"]
