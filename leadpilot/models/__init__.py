"""SQLAlchemy declarative base and persisted models.

A single declarative ``Base`` is shared by every model so the whole schema
can be created (tests, local SQLite) or migrated (Alembic) in one place.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


from .automation import AutomationRule, ConversationRule, ConversationRuleSeed
from .escalation import Escalation
from .lead import Lead, LeadScoreEvent, LeadTask
from .message import Message
from .scheduling import ScheduledStep


__all__ = [
    "AutomationRule",
    "Base",
    "ConversationRule",
    "ConversationRuleSeed",
    "Escalation",
    "Lead",
    "LeadScoreEvent",
    "LeadTask",
    "Message",
    "ScheduledStep",
]
