import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select

from leadpilot.events import EventType
from leadpilot.leads.repository import InMemoryLeadRepository, LeadNotFoundError, SqlAlchemyLeadRepository
from leadpilot.leads.resolver import LeadResolver
from leadpilot.models import Lead


def test_resolve_creates_lead_with_whatsapp_defaults(leads, bus, captured_events, tenant_id, make_message):
    resolver = LeadResolver(leads, event_bus=bus)

    resolution = resolver.resolve(tenant_id, "5511999990000", make_message("Oi, tudo bem?"))

    lead = resolution.lead
    assert resolution.created
    assert lead.name == "Ana Souza"
    assert lead.email == "whatsapp_5511999990000@leads.local"
    assert lead.source == "WhatsApp"
    assert lead.temperature == "Warm"
    assert lead.status == "New"
    assert lead.score == 10
    assert lead.first_message == "Oi, tudo bem?"
    assert lead.message_count == 1
    assert [e.event_type for e in captured_events] == [EventType.LEAD_CREATED.value]
    assert captured_events[0].lead_id == lead.id
    assert captured_events[0].payload["lead"]["phone"] == "5511999990000"


def test_resolve_existing_lead_records_activity_without_event(
    leads, bus, captured_events, tenant_id, make_message, clock
):
    resolver = LeadResolver(leads, event_bus=bus)
    first = resolver.resolve(tenant_id, "5511999990000", make_message("one")).lead

    clock.advance(minutes=3)
    again = resolver.resolve(tenant_id, "5511999990000", make_message("two", sender_name="Someone Else"))

    assert not again.created
    assert again.lead.id == first.id
    assert again.lead.name == "Ana Souza"
    assert again.lead.first_message == "one"
    assert again.lead.message_count == 2
    assert again.lead.last_contact_at == clock()
    assert len(captured_events) == 1


def test_resolve_without_activity_keeps_existing_counters(leads, bus, captured_events, tenant_id, make_message, clock):
    resolver = LeadResolver(leads, event_bus=bus)
    first = resolver.resolve(tenant_id, "5511999990000", make_message("one")).lead

    clock.advance(minutes=3)
    again = resolver.resolve(tenant_id, "5511999990000", make_message("two"), record_activity=False)

    assert not again.created
    assert again.lead.message_count == first.message_count
    assert again.lead.last_contact_at == first.last_contact_at
    assert len(captured_events) == 1


def test_resolve_uses_phone_when_push_name_missing(leads, tenant_id, make_message):
    resolver = LeadResolver(leads, initial_score=25)
    lead = resolver.resolve(tenant_id, "5511888887777", make_message(sender_name=None)).lead
    assert lead.name == "5511888887777"
    assert lead.score == 25


def test_same_phone_in_two_tenants_gives_two_leads(leads, make_message):
    resolver = LeadResolver(leads)
    a = resolver.resolve(uuid.uuid4(), "5511999990000", make_message()).lead
    b = resolver.resolve(uuid.uuid4(), "5511999990000", make_message()).lead
    assert a.id != b.id


def test_concurrent_first_messages_create_one_lead_in_memory(tenant_id, make_message):
    repository = InMemoryLeadRepository()
    created_events = []
    lock = threading.Lock()

    class Bus:
        def publish(self, exchange, event_name, payload):
            with lock:
                created_events.append(payload)

    resolver = LeadResolver(repository, event_bus=Bus())
    message = make_message()

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: resolver.resolve(tenant_id, "5511999990000", message), range(16)))

    assert len({r.lead.id for r in results}) == 1
    assert sum(r.created for r in results) == 1
    assert len(created_events) == 1
    assert repository.get(results[0].lead.id).message_count == 16


def test_concurrent_first_messages_create_one_lead_in_sql(session_factory, tenant_id, make_message):
    resolver = LeadResolver(SqlAlchemyLeadRepository(session_factory))
    message = make_message()
    barrier = threading.Barrier(4)

    def _resolve(_):
        barrier.wait()
        return resolver.resolve(tenant_id, "5511999990000", message)

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(_resolve, range(4)))

    with session_factory() as session:
        count = session.scalar(select(func.count()).select_from(Lead))
    assert count == 1
    assert sum(r.created for r in results) == 1
    assert len({r.lead.id for r in results}) == 1


def test_sql_repository_mutations(session_factory, tenant_id, make_message):
    repository = SqlAlchemyLeadRepository(session_factory)
    lead = LeadResolver(repository).resolve(tenant_id, "5511999990000", make_message()).lead

    updated, previous = repository.set_status(lead.id, "Qualified")
    assert previous == "New" and updated.status == "Qualified"

    repository.append_note(lead.id, "first")
    noted = repository.append_note(lead.id, "second")
    assert noted.notes == "first\n\nsecond"

    assert repository.assign_coach(lead.id, "coach-7").assigned_coach_id == "coach-7"

    scored = repository.apply_score(lead.id, -3, ["Negative message sentiment"], negative=True)
    assert scored.score == 7
    assert scored.negative_message_count == 1
    assert repository.reset_negative_count(lead.id).negative_message_count == 0
    with pytest.raises(LeadNotFoundError):
        repository.reset_negative_count(uuid.uuid4())
    assert [e.delta for e in repository.score_history(lead.id)] == [-3]

    assert repository.get_by_phone(tenant_id, "5511999990000").id == lead.id
    assert repository.get(uuid.uuid4()) is None
