"""Lead persistence.

Every mutation here is a single atomic statement (upsert or in-place
increment) so concurrent inbound messages from the same contact never race
on read-modify-write in application code.
"""
from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from ..models import Lead, LeadScoreEvent, LeadTask
from ..models.session import dialect_insert
from ..timeutils import as_utc, utcnow
from . import schemas


class LeadNotFoundError(LookupError):
    """Raised when a lead could not be located."""


class LeadRepository(Protocol):
    """Persistence abstraction used by the resolver, scorer and actions."""

    def upsert_for_contact(
        self, tenant_id: UUID, phone: str, defaults: schemas.LeadDefaults
    ) -> Tuple[schemas.LeadRecord, bool]: ...

    def get(self, lead_id: UUID) -> Optional[schemas.LeadRecord]: ...

    def get_by_phone(self, tenant_id: UUID, phone: str) -> Optional[schemas.LeadRecord]: ...

    def record_activity(self, lead_id: UUID, contacted_at: datetime) -> schemas.LeadRecord: ...

    def apply_score(
        self, lead_id: UUID, delta: int, reasons: List[str], *, negative: bool = False
    ) -> schemas.LeadRecord: ...

    def reset_negative_count(self, lead_id: UUID) -> schemas.LeadRecord: ...

    def score_history(self, lead_id: UUID) -> List[schemas.ScoreEventRecord]: ...

    def set_status(self, lead_id: UUID, status: str) -> Tuple[schemas.LeadRecord, str]: ...

    def assign_coach(self, lead_id: UUID, coach_id: str) -> schemas.LeadRecord: ...

    def append_note(self, lead_id: UUID, note: str) -> schemas.LeadRecord: ...

    def create_task(self, payload: schemas.TaskCreate) -> schemas.TaskRecord: ...

    def list_tasks(self, lead_id: UUID) -> List[schemas.TaskRecord]: ...


def _join_note(existing: str | None, note: str) -> str:
    return f"{existing}\n\n{note}" if existing else note


class SqlAlchemyLeadRepository:
    """SQLAlchemy implementation of :class:`LeadRepository`."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _require(session: Session, lead_id: UUID, *, lock: bool = False) -> Lead:
        lead = session.get(Lead, lead_id, with_for_update=lock or None)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        return lead

    # Lead operations ----------------------------------------------------------
    def upsert_for_contact(
        self, tenant_id: UUID, phone: str, defaults: schemas.LeadDefaults
    ) -> Tuple[schemas.LeadRecord, bool]:
        first_contact = defaults.first_contact_at or utcnow()
        with self._session_factory.begin() as session:
            stmt = (
                dialect_insert(session, Lead)
                .values(
                    id=uuid.uuid4(),
                    tenant_id=tenant_id,
                    phone=phone,
                    name=defaults.name,
                    email=defaults.email,
                    status=defaults.status,
                    source=defaults.source,
                    temperature=defaults.temperature,
                    score=defaults.score,
                    first_message=defaults.first_message,
                    first_contact_at=first_contact,
                    last_contact_at=first_contact,
                    message_count=1,
                    negative_message_count=0,
                    is_active=True,
                )
                .on_conflict_do_nothing(index_elements=["tenant_id", "phone"])
            )
            created = session.execute(stmt).rowcount == 1
            lead = session.scalars(
                select(Lead).where(Lead.tenant_id == tenant_id, Lead.phone == phone)
            ).one()
            return schemas.LeadRecord.model_validate(lead), created

    def get(self, lead_id: UUID) -> Optional[schemas.LeadRecord]:
        with self._session_factory() as session:
            lead = session.get(Lead, lead_id)
            return schemas.LeadRecord.model_validate(lead) if lead else None

    def get_by_phone(self, tenant_id: UUID, phone: str) -> Optional[schemas.LeadRecord]:
        with self._session_factory() as session:
            lead = session.scalars(
                select(Lead).where(Lead.tenant_id == tenant_id, Lead.phone == phone)
            ).first()
            return schemas.LeadRecord.model_validate(lead) if lead else None

    def record_activity(self, lead_id: UUID, contacted_at: datetime) -> schemas.LeadRecord:
        with self._session_factory.begin() as session:
            result = session.execute(
                update(Lead)
                .where(Lead.id == lead_id)
                .values(
                    last_contact_at=as_utc(contacted_at),
                    is_active=True,
                    message_count=Lead.message_count + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise LeadNotFoundError(f"Lead {lead_id} not found")
            return schemas.LeadRecord.model_validate(self._require(session, lead_id))

    def apply_score(
        self, lead_id: UUID, delta: int, reasons: List[str], *, negative: bool = False
    ) -> schemas.LeadRecord:
        values = {"score": Lead.score + delta}
        if negative:
            values["negative_message_count"] = Lead.negative_message_count + 1
        with self._session_factory.begin() as session:
            result = session.execute(
                update(Lead)
                .where(Lead.id == lead_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise LeadNotFoundError(f"Lead {lead_id} not found")
            session.add(LeadScoreEvent(lead_id=lead_id, delta=delta, reasons=list(reasons)))
            return schemas.LeadRecord.model_validate(self._require(session, lead_id))

    def reset_negative_count(self, lead_id: UUID) -> schemas.LeadRecord:
        with self._session_factory.begin() as session:
            result = session.execute(
                update(Lead)
                .where(Lead.id == lead_id)
                .values(negative_message_count=0)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise LeadNotFoundError(f"Lead {lead_id} not found")
            return schemas.LeadRecord.model_validate(self._require(session, lead_id))

    def score_history(self, lead_id: UUID) -> List[schemas.ScoreEventRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(LeadScoreEvent)
                .where(LeadScoreEvent.lead_id == lead_id)
                .order_by(LeadScoreEvent.created_at)
            ).all()
            return [schemas.ScoreEventRecord.model_validate(row) for row in rows]

    def set_status(self, lead_id: UUID, status: str) -> Tuple[schemas.LeadRecord, str]:
        with self._session_factory.begin() as session:
            lead = self._require(session, lead_id, lock=True)
            previous = lead.status
            lead.status = status
            session.flush()
            return schemas.LeadRecord.model_validate(lead), previous

    def assign_coach(self, lead_id: UUID, coach_id: str) -> schemas.LeadRecord:
        with self._session_factory.begin() as session:
            lead = self._require(session, lead_id, lock=True)
            lead.assigned_coach_id = coach_id
            session.flush()
            return schemas.LeadRecord.model_validate(lead)

    def append_note(self, lead_id: UUID, note: str) -> schemas.LeadRecord:
        with self._session_factory.begin() as session:
            lead = self._require(session, lead_id, lock=True)
            lead.notes = _join_note(lead.notes, note)
            session.flush()
            return schemas.LeadRecord.model_validate(lead)

    # Tasks ----------------------------------------------------------------------
    def create_task(self, payload: schemas.TaskCreate) -> schemas.TaskRecord:
        with self._session_factory.begin() as session:
            self._require(session, payload.lead_id)
            task = LeadTask(id=uuid.uuid4(), status="Pending", **payload.model_dump())
            session.add(task)
            session.flush()
            return schemas.TaskRecord.model_validate(task)

    def list_tasks(self, lead_id: UUID) -> List[schemas.TaskRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(LeadTask).where(LeadTask.lead_id == lead_id).order_by(LeadTask.created_at)
            ).all()
            return [schemas.TaskRecord.model_validate(row) for row in rows]


class InMemoryLeadRepository:
    """Lock-guarded dictionary store with the same atomicity guarantees."""

    def __init__(self) -> None:
        self._leads: Dict[UUID, schemas.LeadRecord] = {}
        self._by_phone: Dict[Tuple[UUID, str], UUID] = {}
        self._score_events: Dict[UUID, List[schemas.ScoreEventRecord]] = {}
        self._tasks: Dict[UUID, List[schemas.TaskRecord]] = {}
        self._lock = threading.RLock()

    def _require(self, lead_id: UUID) -> schemas.LeadRecord:
        lead = self._leads.get(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        return lead

    def _update(self, lead_id: UUID, **changes) -> schemas.LeadRecord:
        updated = self._require(lead_id).model_copy(update=changes)
        self._leads[lead_id] = updated
        return updated

    def upsert_for_contact(
        self, tenant_id: UUID, phone: str, defaults: schemas.LeadDefaults
    ) -> Tuple[schemas.LeadRecord, bool]:
        with self._lock:
            existing = self._by_phone.get((tenant_id, phone))
            if existing is not None:
                return self._leads[existing], False
            first_contact = defaults.first_contact_at or utcnow()
            record = schemas.LeadRecord(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                phone=phone,
                first_contact_at=first_contact,
                last_contact_at=first_contact,
                message_count=1,
                **defaults.model_dump(exclude={"first_contact_at"}),
            )
            self._leads[record.id] = record
            self._by_phone[(tenant_id, phone)] = record.id
            return record, True

    def get(self, lead_id: UUID) -> Optional[schemas.LeadRecord]:
        with self._lock:
            return self._leads.get(lead_id)

    def get_by_phone(self, tenant_id: UUID, phone: str) -> Optional[schemas.LeadRecord]:
        with self._lock:
            lead_id = self._by_phone.get((tenant_id, phone))
            return self._leads.get(lead_id) if lead_id else None

    def record_activity(self, lead_id: UUID, contacted_at: datetime) -> schemas.LeadRecord:
        with self._lock:
            lead = self._require(lead_id)
            return self._update(
                lead_id,
                last_contact_at=as_utc(contacted_at),
                is_active=True,
                message_count=lead.message_count + 1,
            )

    def apply_score(
        self, lead_id: UUID, delta: int, reasons: List[str], *, negative: bool = False
    ) -> schemas.LeadRecord:
        with self._lock:
            lead = self._require(lead_id)
            updated = self._update(
                lead_id,
                score=lead.score + delta,
                negative_message_count=lead.negative_message_count + (1 if negative else 0),
            )
            self._score_events.setdefault(lead_id, []).append(
                schemas.ScoreEventRecord(
                    lead_id=lead_id, delta=delta, reasons=list(reasons), created_at=utcnow()
                )
            )
            return updated

    def reset_negative_count(self, lead_id: UUID) -> schemas.LeadRecord:
        with self._lock:
            return self._update(lead_id, negative_message_count=0)

    def score_history(self, lead_id: UUID) -> List[schemas.ScoreEventRecord]:
        with self._lock:
            return list(self._score_events.get(lead_id, []))

    def set_status(self, lead_id: UUID, status: str) -> Tuple[schemas.LeadRecord, str]:
        with self._lock:
            previous = self._require(lead_id).status
            return self._update(lead_id, status=status), previous

    def assign_coach(self, lead_id: UUID, coach_id: str) -> schemas.LeadRecord:
        with self._lock:
            return self._update(lead_id, assigned_coach_id=coach_id)

    def append_note(self, lead_id: UUID, note: str) -> schemas.LeadRecord:
        with self._lock:
            lead = self._require(lead_id)
            return self._update(lead_id, notes=_join_note(lead.notes, note))

    def create_task(self, payload: schemas.TaskCreate) -> schemas.TaskRecord:
        with self._lock:
            self._require(payload.lead_id)
            task = schemas.TaskRecord(id=uuid.uuid4(), **payload.model_dump())
            self._tasks.setdefault(payload.lead_id, []).append(task)
            return task

    def list_tasks(self, lead_id: UUID) -> List[schemas.TaskRecord]:
        with self._lock:
            return list(self._tasks.get(lead_id, []))


__all__ = [
    "InMemoryLeadRepository",
    "LeadNotFoundError",
    "LeadRepository",
    "SqlAlchemyLeadRepository",
]
