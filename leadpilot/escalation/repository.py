"""Escalation queue storage; at most one pending case per lead."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from ..models import Escalation
from ..models.session import dialect_insert
from .schemas import EscalationRecord


class EscalationNotFoundError(LookupError):
    """Raised when resolving a lead that has no pending escalation."""


class EscalationQueue(Protocol):
    def record(self, escalation: EscalationRecord) -> EscalationRecord: ...

    def get(self, lead_id: UUID) -> Optional[EscalationRecord]: ...

    def list(self, tenant_id: UUID) -> List[EscalationRecord]: ...

    def resolve(self, lead_id: UUID) -> EscalationRecord: ...


class SqlAlchemyEscalationQueue:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def record(self, escalation: EscalationRecord) -> EscalationRecord:
        values = escalation.model_dump()
        with self._session_factory.begin() as session:
            stmt = dialect_insert(session, Escalation).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["lead_id"],
                set_={
                    "tenant_id": stmt.excluded.tenant_id,
                    "reason": stmt.excluded.reason,
                    "message": stmt.excluded.message,
                    "analysis": stmt.excluded.analysis,
                    "created_at": stmt.excluded.created_at,
                },
            )
            session.execute(stmt)
        return escalation

    def get(self, lead_id: UUID) -> Optional[EscalationRecord]:
        with self._session_factory() as session:
            row = session.get(Escalation, lead_id)
            return EscalationRecord.model_validate(row) if row else None

    def list(self, tenant_id: UUID) -> List[EscalationRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(Escalation)
                .where(Escalation.tenant_id == tenant_id)
                .order_by(Escalation.created_at)
            ).all()
            return [EscalationRecord.model_validate(row) for row in rows]

    def resolve(self, lead_id: UUID) -> EscalationRecord:
        with self._session_factory.begin() as session:
            row = session.get(Escalation, lead_id, with_for_update=True)
            if row is None:
                raise EscalationNotFoundError(f"No pending escalation for lead {lead_id}")
            record = EscalationRecord.model_validate(row)
            session.execute(delete(Escalation).where(Escalation.lead_id == lead_id))
            return record


class InMemoryEscalationQueue:
    def __init__(self) -> None:
        self._items: Dict[UUID, EscalationRecord] = {}
        self._lock = threading.Lock()

    def record(self, escalation: EscalationRecord) -> EscalationRecord:
        with self._lock:
            # Re-inserting moves the lead to the back of the queue.
            self._items.pop(escalation.lead_id, None)
            self._items[escalation.lead_id] = escalation
        return escalation

    def get(self, lead_id: UUID) -> Optional[EscalationRecord]:
        with self._lock:
            return self._items.get(lead_id)

    def list(self, tenant_id: UUID) -> List[EscalationRecord]:
        with self._lock:
            return [item for item in self._items.values() if item.tenant_id == tenant_id]

    def resolve(self, lead_id: UUID) -> EscalationRecord:
        with self._lock:
            record = self._items.pop(lead_id, None)
        if record is None:
            raise EscalationNotFoundError(f"No pending escalation for lead {lead_id}")
        return record


__all__ = [
    "EscalationNotFoundError",
    "EscalationQueue",
    "InMemoryEscalationQueue",
    "SqlAlchemyEscalationQueue",
]
