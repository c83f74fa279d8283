"""Storage for automation rules, conversation rules and scheduled steps."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..models import AutomationRule, ConversationRule, ConversationRuleSeed, ScheduledStep
from ..models.session import dialect_insert
from ..timeutils import as_utc, utcnow
from . import schemas


class RuleNotFoundError(LookupError):
    """Raised when a rule does not exist for the tenant."""


class RuleConflictError(ValueError):
    """Raised when a rule name or key is already taken for the tenant."""


# ---------------------------------------------------------------------------
# Generic automation rules


class AutomationRuleRepository(Protocol):
    def create(
        self, tenant_id: UUID, payload: schemas.AutomationRuleCreate
    ) -> schemas.AutomationRuleRecord: ...

    def list(self, tenant_id: UUID) -> List[schemas.AutomationRuleRecord]: ...

    def get(self, tenant_id: UUID, rule_id: UUID) -> schemas.AutomationRuleRecord: ...

    def set_active(
        self, tenant_id: UUID, rule_id: UUID, is_active: bool
    ) -> schemas.AutomationRuleRecord: ...

    def delete(self, tenant_id: UUID, rule_id: UUID) -> None: ...

    def active_for_event(
        self, event_type: str, tenant_id: UUID | None = None
    ) -> List[schemas.AutomationRuleRecord]: ...


def _automation_row(tenant_id: UUID, payload: schemas.AutomationRuleCreate) -> AutomationRule:
    data = payload.model_dump(mode="json")
    return AutomationRule(id=uuid.uuid4(), tenant_id=tenant_id, **data)


class SqlAlchemyAutomationRuleRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _require(session: Session, tenant_id: UUID, rule_id: UUID) -> AutomationRule:
        row = session.get(AutomationRule, rule_id)
        if row is None or row.tenant_id != tenant_id:
            raise RuleNotFoundError(f"Automation rule {rule_id} not found")
        return row

    def create(
        self, tenant_id: UUID, payload: schemas.AutomationRuleCreate
    ) -> schemas.AutomationRuleRecord:
        try:
            with self._session_factory.begin() as session:
                row = _automation_row(tenant_id, payload)
                session.add(row)
                session.flush()
                return schemas.AutomationRuleRecord.model_validate(row)
        except IntegrityError as exc:
            raise RuleConflictError(f"Automation rule '{payload.name}' already exists") from exc

    def list(self, tenant_id: UUID) -> List[schemas.AutomationRuleRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(AutomationRule)
                .where(AutomationRule.tenant_id == tenant_id)
                .order_by(AutomationRule.created_at)
            ).all()
            return [schemas.AutomationRuleRecord.model_validate(row) for row in rows]

    def get(self, tenant_id: UUID, rule_id: UUID) -> schemas.AutomationRuleRecord:
        with self._session_factory() as session:
            return schemas.AutomationRuleRecord.model_validate(
                self._require(session, tenant_id, rule_id)
            )

    def set_active(
        self, tenant_id: UUID, rule_id: UUID, is_active: bool
    ) -> schemas.AutomationRuleRecord:
        with self._session_factory.begin() as session:
            row = self._require(session, tenant_id, rule_id)
            row.is_active = is_active
            session.flush()
            return schemas.AutomationRuleRecord.model_validate(row)

    def delete(self, tenant_id: UUID, rule_id: UUID) -> None:
        with self._session_factory.begin() as session:
            session.delete(self._require(session, tenant_id, rule_id))

    def active_for_event(
        self, event_type: str, tenant_id: UUID | None = None
    ) -> List[schemas.AutomationRuleRecord]:
        stmt = select(AutomationRule).where(
            AutomationRule.trigger_event == event_type, AutomationRule.is_active.is_(True)
        )
        if tenant_id is not None:
            stmt = stmt.where(AutomationRule.tenant_id == tenant_id)
        with self._session_factory() as session:
            rows = session.scalars(stmt.order_by(AutomationRule.created_at)).all()
            return [schemas.AutomationRuleRecord.model_validate(row) for row in rows]


class InMemoryAutomationRuleRepository:
    def __init__(self) -> None:
        self._rules: Dict[UUID, schemas.AutomationRuleRecord] = {}
        self._lock = threading.Lock()

    def _require(self, tenant_id: UUID, rule_id: UUID) -> schemas.AutomationRuleRecord:
        rule = self._rules.get(rule_id)
        if rule is None or rule.tenant_id != tenant_id:
            raise RuleNotFoundError(f"Automation rule {rule_id} not found")
        return rule

    def create(
        self, tenant_id: UUID, payload: schemas.AutomationRuleCreate
    ) -> schemas.AutomationRuleRecord:
        with self._lock:
            if any(r.tenant_id == tenant_id and r.name == payload.name for r in self._rules.values()):
                raise RuleConflictError(f"Automation rule '{payload.name}' already exists")
            record = schemas.AutomationRuleRecord(
                id=uuid.uuid4(), tenant_id=tenant_id, created_at=utcnow(), **payload.model_dump()
            )
            self._rules[record.id] = record
            return record

    def list(self, tenant_id: UUID) -> List[schemas.AutomationRuleRecord]:
        with self._lock:
            return [r for r in self._rules.values() if r.tenant_id == tenant_id]

    def get(self, tenant_id: UUID, rule_id: UUID) -> schemas.AutomationRuleRecord:
        with self._lock:
            return self._require(tenant_id, rule_id)

    def set_active(
        self, tenant_id: UUID, rule_id: UUID, is_active: bool
    ) -> schemas.AutomationRuleRecord:
        with self._lock:
            updated = self._require(tenant_id, rule_id).model_copy(update={"is_active": is_active})
            self._rules[rule_id] = updated
            return updated

    def delete(self, tenant_id: UUID, rule_id: UUID) -> None:
        with self._lock:
            self._require(tenant_id, rule_id)
            del self._rules[rule_id]

    def active_for_event(
        self, event_type: str, tenant_id: UUID | None = None
    ) -> List[schemas.AutomationRuleRecord]:
        with self._lock:
            return [
                r
                for r in self._rules.values()
                if r.is_active
                and r.trigger_event == event_type
                and (tenant_id is None or r.tenant_id == tenant_id)
            ]


# ---------------------------------------------------------------------------
# Conversation rules


class ConversationRuleRepository(Protocol):
    def create(
        self, tenant_id: UUID, payload: schemas.ConversationRuleCreate
    ) -> schemas.ConversationRuleRecord: ...

    def list(
        self, tenant_id: UUID, *, active_only: bool = False
    ) -> List[schemas.ConversationRuleRecord]: ...

    def get(self, tenant_id: UUID, key: str) -> schemas.ConversationRuleRecord: ...

    def set_active(
        self, tenant_id: UUID, key: str, is_active: bool
    ) -> schemas.ConversationRuleRecord: ...

    def delete(self, tenant_id: UUID, key: str) -> None: ...

    def claim_default_seed(self, tenant_id: UUID) -> bool:
        """Record that defaults were seeded; ``False`` if already recorded."""
        ...


class SqlAlchemyConversationRuleRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _require(session: Session, tenant_id: UUID, key: str) -> ConversationRule:
        row = session.scalars(
            select(ConversationRule).where(
                ConversationRule.tenant_id == tenant_id, ConversationRule.key == key
            )
        ).first()
        if row is None:
            raise RuleNotFoundError(f"Conversation rule '{key}' not found")
        return row

    def create(
        self, tenant_id: UUID, payload: schemas.ConversationRuleCreate
    ) -> schemas.ConversationRuleRecord:
        try:
            with self._session_factory.begin() as session:
                row = ConversationRule(
                    id=uuid.uuid4(), tenant_id=tenant_id, **payload.model_dump(mode="json")
                )
                session.add(row)
                session.flush()
                return schemas.ConversationRuleRecord.model_validate(row)
        except IntegrityError as exc:
            raise RuleConflictError(f"Conversation rule '{payload.key}' already exists") from exc

    def list(
        self, tenant_id: UUID, *, active_only: bool = False
    ) -> List[schemas.ConversationRuleRecord]:
        stmt = select(ConversationRule).where(ConversationRule.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(ConversationRule.is_active.is_(True))
        with self._session_factory() as session:
            rows = session.scalars(stmt.order_by(ConversationRule.created_at)).all()
            return [schemas.ConversationRuleRecord.model_validate(row) for row in rows]

    def get(self, tenant_id: UUID, key: str) -> schemas.ConversationRuleRecord:
        with self._session_factory() as session:
            return schemas.ConversationRuleRecord.model_validate(
                self._require(session, tenant_id, key)
            )

    def set_active(
        self, tenant_id: UUID, key: str, is_active: bool
    ) -> schemas.ConversationRuleRecord:
        with self._session_factory.begin() as session:
            row = self._require(session, tenant_id, key)
            row.is_active = is_active
            session.flush()
            return schemas.ConversationRuleRecord.model_validate(row)

    def delete(self, tenant_id: UUID, key: str) -> None:
        with self._session_factory.begin() as session:
            session.delete(self._require(session, tenant_id, key))

    def claim_default_seed(self, tenant_id: UUID) -> bool:
        with self._session_factory.begin() as session:
            stmt = (
                dialect_insert(session, ConversationRuleSeed)
                .values(tenant_id=tenant_id, seeded_at=utcnow())
                .on_conflict_do_nothing(index_elements=["tenant_id"])
            )
            return session.execute(stmt).rowcount == 1


class InMemoryConversationRuleRepository:
    def __init__(self) -> None:
        self._rules: Dict[tuple[UUID, str], schemas.ConversationRuleRecord] = {}
        self._seeded: set[UUID] = set()
        self._lock = threading.Lock()

    def _require(self, tenant_id: UUID, key: str) -> schemas.ConversationRuleRecord:
        rule = self._rules.get((tenant_id, key))
        if rule is None:
            raise RuleNotFoundError(f"Conversation rule '{key}' not found")
        return rule

    def create(
        self, tenant_id: UUID, payload: schemas.ConversationRuleCreate
    ) -> schemas.ConversationRuleRecord:
        with self._lock:
            if (tenant_id, payload.key) in self._rules:
                raise RuleConflictError(f"Conversation rule '{payload.key}' already exists")
            record = schemas.ConversationRuleRecord(
                id=uuid.uuid4(), tenant_id=tenant_id, **payload.model_dump()
            )
            self._rules[(tenant_id, payload.key)] = record
            return record

    def list(
        self, tenant_id: UUID, *, active_only: bool = False
    ) -> List[schemas.ConversationRuleRecord]:
        with self._lock:
            return [
                rule
                for (owner, _), rule in self._rules.items()
                if owner == tenant_id and (rule.is_active or not active_only)
            ]

    def get(self, tenant_id: UUID, key: str) -> schemas.ConversationRuleRecord:
        with self._lock:
            return self._require(tenant_id, key)

    def set_active(
        self, tenant_id: UUID, key: str, is_active: bool
    ) -> schemas.ConversationRuleRecord:
        with self._lock:
            updated = self._require(tenant_id, key).model_copy(update={"is_active": is_active})
            self._rules[(tenant_id, key)] = updated
            return updated

    def delete(self, tenant_id: UUID, key: str) -> None:
        with self._lock:
            self._require(tenant_id, key)
            del self._rules[(tenant_id, key)]

    def claim_default_seed(self, tenant_id: UUID) -> bool:
        with self._lock:
            if tenant_id in self._seeded:
                return False
            self._seeded.add(tenant_id)
            return True


# ---------------------------------------------------------------------------
# Scheduled steps


class StepStore(Protocol):
    """Durable queue of delayed work.

    ``claim_due`` hands out pending rows whose ``due_at`` has passed and
    leases them by pushing ``due_at`` forward, so a worker that dies
    mid-dispatch does not lose the row: it becomes claimable again once the
    lease expires.
    """

    def add(
        self,
        *,
        tenant_id: UUID,
        kind: str,
        due_at: datetime,
        payload: dict,
        lead_id: UUID | None = None,
        rule_id: str | None = None,
        step_index: int = 0,
    ) -> schemas.ScheduledStepRecord: ...

    def claim_due(
        self, now: datetime, limit: int, lease: timedelta
    ) -> List[schemas.ScheduledStepRecord]: ...

    def mark_sent(self, step_id: UUID, at: datetime) -> None: ...

    def mark_failed(self, step_id: UUID, error: str, retry_at: datetime | None) -> None: ...

    def list(
        self, tenant_id: UUID, *, status: str | None = None
    ) -> List[schemas.ScheduledStepRecord]: ...


CLAIMABLE = ("pending", "running")


class SqlAlchemyStepStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def add(
        self,
        *,
        tenant_id: UUID,
        kind: str,
        due_at: datetime,
        payload: dict,
        lead_id: UUID | None = None,
        rule_id: str | None = None,
        step_index: int = 0,
    ) -> schemas.ScheduledStepRecord:
        with self._session_factory.begin() as session:
            row = ScheduledStep(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                lead_id=lead_id,
                kind=kind,
                rule_id=rule_id,
                step_index=step_index,
                payload=payload,
                due_at=as_utc(due_at),
                status="pending",
                attempts=0,
            )
            session.add(row)
            session.flush()
            return schemas.ScheduledStepRecord.model_validate(row)

    def claim_due(
        self, now: datetime, limit: int, lease: timedelta
    ) -> List[schemas.ScheduledStepRecord]:
        now = as_utc(now)
        stmt = (
            select(ScheduledStep)
            .where(ScheduledStep.status.in_(CLAIMABLE), ScheduledStep.due_at <= now)
            .order_by(ScheduledStep.due_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        with self._session_factory.begin() as session:
            rows = session.scalars(stmt).all()
            claimed = []
            for row in rows:
                claimed.append(schemas.ScheduledStepRecord.model_validate(row))
                row.status = "running"
                row.attempts += 1
                row.due_at = now + lease
            return [
                record.model_copy(update={"attempts": record.attempts + 1, "status": "running"})
                for record in claimed
            ]

    def mark_sent(self, step_id: UUID, at: datetime) -> None:
        with self._session_factory.begin() as session:
            row = session.get(ScheduledStep, step_id)
            if row is not None:
                row.status = "sent"
                row.completed_at = as_utc(at)
                row.last_error = None

    def mark_failed(self, step_id: UUID, error: str, retry_at: datetime | None) -> None:
        with self._session_factory.begin() as session:
            row = session.get(ScheduledStep, step_id)
            if row is None:
                return
            row.last_error = error
            if retry_at is None:
                row.status = "failed"
                row.completed_at = utcnow()
            else:
                row.status = "pending"
                row.due_at = as_utc(retry_at)

    def list(
        self, tenant_id: UUID, *, status: str | None = None
    ) -> List[schemas.ScheduledStepRecord]:
        stmt = select(ScheduledStep).where(ScheduledStep.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(ScheduledStep.status == status)
        with self._session_factory() as session:
            rows = session.scalars(stmt.order_by(ScheduledStep.due_at)).all()
            return [schemas.ScheduledStepRecord.model_validate(row) for row in rows]


class InMemoryStepStore:
    def __init__(self) -> None:
        self._steps: Dict[UUID, schemas.ScheduledStepRecord] = {}
        self._lock = threading.Lock()

    def add(
        self,
        *,
        tenant_id: UUID,
        kind: str,
        due_at: datetime,
        payload: dict,
        lead_id: UUID | None = None,
        rule_id: str | None = None,
        step_index: int = 0,
    ) -> schemas.ScheduledStepRecord:
        record = schemas.ScheduledStepRecord(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            lead_id=lead_id,
            kind=kind,
            rule_id=rule_id,
            step_index=step_index,
            payload=dict(payload),
            due_at=due_at,
        )
        with self._lock:
            self._steps[record.id] = record
        return record

    def claim_due(
        self, now: datetime, limit: int, lease: timedelta
    ) -> List[schemas.ScheduledStepRecord]:
        now = as_utc(now)
        with self._lock:
            due = sorted(
                (s for s in self._steps.values() if s.status in CLAIMABLE and s.due_at <= now),
                key=lambda s: s.due_at,
            )[:limit]
            claimed = []
            for step in due:
                leased = step.model_copy(
                    update={"status": "running", "attempts": step.attempts + 1, "due_at": now + lease}
                )
                self._steps[step.id] = leased
                claimed.append(step.model_copy(update={"status": "running", "attempts": leased.attempts}))
            return claimed

    def mark_sent(self, step_id: UUID, at: datetime) -> None:
        with self._lock:
            step = self._steps.get(step_id)
            if step is not None:
                self._steps[step_id] = step.model_copy(
                    update={"status": "sent", "completed_at": as_utc(at), "last_error": None}
                )

    def mark_failed(self, step_id: UUID, error: str, retry_at: datetime | None) -> None:
        with self._lock:
            step = self._steps.get(step_id)
            if step is None:
                return
            if retry_at is None:
                changes = {"status": "failed", "last_error": error, "completed_at": utcnow()}
            else:
                changes = {"status": "pending", "last_error": error, "due_at": as_utc(retry_at)}
            self._steps[step_id] = step.model_copy(update=changes)

    def list(
        self, tenant_id: UUID, *, status: str | None = None
    ) -> List[schemas.ScheduledStepRecord]:
        with self._lock:
            steps = [
                s
                for s in self._steps.values()
                if s.tenant_id == tenant_id and (status is None or s.status == status)
            ]
        return sorted(steps, key=lambda s: s.due_at)


__all__ = [
    "AutomationRuleRepository",
    "ConversationRuleRepository",
    "InMemoryAutomationRuleRepository",
    "InMemoryConversationRuleRepository",
    "InMemoryStepStore",
    "RuleConflictError",
    "RuleNotFoundError",
    "SqlAlchemyAutomationRuleRepository",
    "SqlAlchemyConversationRuleRepository",
    "SqlAlchemyStepStore",
    "StepStore",
]
