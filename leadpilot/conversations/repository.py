"""Append-only conversation store."""
from __future__ import annotations

import threading
import uuid
from typing import Dict, List, Protocol, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..models import Message
from ..timeutils import as_utc
from . import schemas
from .models import MessageCreate


class ConversationRepository(Protocol):
    """Abstraction for persisting conversation messages."""

    def save(
        self, tenant_id: UUID, lead_id: UUID, message: MessageCreate
    ) -> schemas.MessageRecord: ...

    def history(
        self, tenant_id: UUID, lead_id: UUID, limit: int = 50
    ) -> List[schemas.MessageRecord]: ...


def _row_values(tenant_id: UUID, lead_id: UUID, message: MessageCreate) -> dict:
    return {
        "tenant_id": tenant_id,
        "lead_id": lead_id,
        "external_id": message.external_id,
        "sender": message.sender,
        "recipient": message.recipient,
        "body": message.body or "",
        "content_type": message.content_type.value,
        "direction": message.direction.value,
        "sent_at": as_utc(message.sent_at),
        "media_url": message.media_url,
        "is_automated": message.is_automated,
        "rule_id": message.rule_id,
    }


class SqlAlchemyConversationRepository:
    """SQLAlchemy implementation of :class:`ConversationRepository`."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def save(
        self, tenant_id: UUID, lead_id: UUID, message: MessageCreate
    ) -> schemas.MessageRecord:
        with self._session_factory.begin() as session:
            row = Message(id=uuid.uuid4(), **_row_values(tenant_id, lead_id, message))
            session.add(row)
            session.flush()
            return schemas.MessageRecord.model_validate(row)

    def history(
        self, tenant_id: UUID, lead_id: UUID, limit: int = 50
    ) -> List[schemas.MessageRecord]:
        stmt = (
            select(Message)
            .where(Message.tenant_id == tenant_id, Message.lead_id == lead_id)
            .order_by(Message.sent_at.desc(), Message.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            rows = session.scalars(stmt).all()
            records = [schemas.MessageRecord.model_validate(row) for row in rows]
        records.reverse()
        return records


class InMemoryConversationRepository:
    """Process-local store used by tests and single-instance development."""

    def __init__(self) -> None:
        self._messages: Dict[Tuple[UUID, UUID], List[schemas.MessageRecord]] = {}
        self._lock = threading.Lock()

    def save(
        self, tenant_id: UUID, lead_id: UUID, message: MessageCreate
    ) -> schemas.MessageRecord:
        record = schemas.MessageRecord(
            id=uuid.uuid4(), **_row_values(tenant_id, lead_id, message)
        )
        with self._lock:
            self._messages.setdefault((tenant_id, lead_id), []).append(record)
        return record

    def history(
        self, tenant_id: UUID, lead_id: UUID, limit: int = 50
    ) -> List[schemas.MessageRecord]:
        with self._lock:
            messages = list(self._messages.get((tenant_id, lead_id), []))
        # Stable sort keeps insertion order for identical timestamps.
        newest_first = sorted(
            enumerate(messages), key=lambda item: (item[1].sent_at, item[0]), reverse=True
        )
        recent = [record for _, record in newest_first[:limit]]
        recent.reverse()
        return recent


__all__ = [
    "ConversationRepository",
    "InMemoryConversationRepository",
    "SqlAlchemyConversationRepository",
]
