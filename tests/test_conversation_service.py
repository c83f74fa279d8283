import uuid

import pytest

from leadpilot.automation.schemas import AutomationRuleCreate
from leadpilot.events import EventType
from leadpilot.leads.repository import LeadNotFoundError
from leadpilot.messaging.transport import TransportError

WELCOME = "Hi Ana Souza! Welcome to our community. How can I help you today?"


@pytest.fixture(params=["memory", "sql"])
def app_container(request):
    return request.getfixturevalue("container" if request.param == "memory" else "sql_container")


def test_first_message_end_to_end(app_container, classifier, transport, captured_events, make_message, tenant_id, clock):
    classifier.set(sentiment="positive", sentimentScore=0.9, intent="booking")
    service = app_container.service

    result = service.handle_incoming(tenant_id, make_message("Hi! I'd like to book a session"))

    assert result.lead_created
    assert not result.escalated
    assert result.scheduled_steps == 3
    lead = app_container.leads.get(result.lead_id)
    assert lead.score == 10 + 5 + 10
    assert transport.bodies() == [WELCOME]

    history = service.history(tenant_id, lead.id).items
    assert [(m.direction, m.is_automated) for m in history] == [("inbound", False), ("outbound", True)]
    assert history[0].body == "Hi! I'd like to book a session"
    assert history[1].rule_id == "welcome_sequence"

    clock.advance(minutes=5)
    app_container.scheduler.dispatch_due()
    clock.advance(hours=24)
    app_container.scheduler.dispatch_due()
    assert len(transport.bodies()) == 3
    assert transport.bodies()[2].startswith("Hi Ana Souza! We'd love to help")

    types = [e.event_type for e in captured_events]
    assert types[0] == EventType.LEAD_CREATED.value
    assert EventType.WHATSAPP_MESSAGE_RECEIVED.value in types
    received = next(e for e in captured_events if e.event_type == "whatsapp_message_received")
    assert received.payload["is_first_message"] is True
    assert received.payload["analysis"]["intent"] == "booking"


def test_follow_up_messages_do_not_restart_welcome(container, transport, make_message, tenant_id):
    container.service.handle_incoming(tenant_id, make_message("hello"))
    second = container.service.handle_incoming(tenant_id, make_message("thanks"))

    assert not second.lead_created
    assert second.scheduled_steps == 0
    assert len(transport.bodies()) == 1
    assert container.leads.get(second.lead_id).message_count == 2


def test_escalated_message_skips_rules_but_is_stored(container, transport, make_message, tenant_id):
    result = container.service.handle_incoming(tenant_id, make_message("This is urgent, call me"))

    assert result.escalated
    assert result.escalation_reason == "urgent_keyword:urgent"
    assert result.scheduled_steps == 0
    assert not transport.sent
    [stored] = container.service.history(tenant_id, result.lead_id).items
    assert stored.direction == "inbound"
    assert container.escalation.get(tenant_id, result.lead_id).reason == "urgent_keyword:urgent"


def test_negative_message_triggers_response_then_escalates_on_repeat(
    container, classifier, transport, make_message, tenant_id
):
    container.service.handle_incoming(tenant_id, make_message("hello"))
    classifier.set(sentiment="negative", sentimentScore=0.7)

    first = container.service.handle_incoming(tenant_id, make_message("not great"))
    assert not first.escalated
    assert first.scheduled_steps == 2
    assert transport.bodies()[-1].startswith("I understand your concern")

    container.service.handle_incoming(tenant_id, make_message("still not great"))
    third = container.service.handle_incoming(tenant_id, make_message("nope"))

    assert third.escalated
    assert third.escalation_reason == "repeated_negative_messages"
    assert container.leads.get(third.lead_id).negative_message_count == 3


def test_escalation_store_failure_still_stores_message(
    app_container, captured_events, make_message, tenant_id, monkeypatch
):
    def db_down(record):
        raise RuntimeError("db down")

    monkeypatch.setattr(app_container.escalation_queue, "record", db_down)

    result = app_container.service.handle_incoming(tenant_id, make_message("this is urgent"))

    assert not result.escalated
    assert result.message_id is not None
    inbound = [m for m in app_container.service.history(tenant_id, result.lead_id).items if m.direction == "inbound"]
    assert [m.body for m in inbound] == ["this is urgent"]
    assert EventType.WHATSAPP_MESSAGE_RECEIVED.value in [e.event_type for e in captured_events]


def test_resolving_escalation_restarts_negative_count(app_container, classifier, make_message, tenant_id):
    service = app_container.service
    service.handle_incoming(tenant_id, make_message("hello"))
    classifier.set(sentiment="negative", sentimentScore=0.7)
    for text in ("not great", "still not great", "nope"):
        last = service.handle_incoming(tenant_id, make_message(text))
    assert last.escalation_reason == "repeated_negative_messages"

    app_container.escalation.resolve(tenant_id, last.lead_id)
    assert app_container.leads.get(last.lead_id).negative_message_count == 0

    classifier.set(sentiment="positive", sentimentScore=0.9, intent="booking")
    happy = service.handle_incoming(tenant_id, make_message("ok, let's book"))
    assert not happy.escalated

    classifier.set(sentiment="negative", sentimentScore=0.7)
    grumpy = service.handle_incoming(tenant_id, make_message("hmm"))
    assert not grumpy.escalated
    assert grumpy.scheduled_steps == 2
    assert app_container.escalation.list(tenant_id) == []


def test_tenant_without_rules_is_not_reseeded(app_container, transport, make_message, tenant_id):
    app_container.service.handle_incoming(tenant_id, make_message("hello"))
    for rule in app_container.conversation_rules.list(tenant_id):
        app_container.conversation_rules.delete(tenant_id, rule.key)

    result = app_container.service.handle_incoming(tenant_id, make_message("hi", phone="5511777776666"))

    assert result.lead_created
    assert result.scheduled_steps == 0
    assert app_container.conversation_rules.list(tenant_id) == []
    assert len(transport.bodies()) == 1


def test_group_messages_are_stored_without_rules(container, transport, make_message, tenant_id):
    result = container.service.handle_incoming(tenant_id, make_message("hi all", is_group=True))
    assert result.lead_created
    assert result.scheduled_steps == 0
    assert not transport.sent
    assert result.message_id is not None


def test_classifier_outage_uses_fallback(container, make_message, tenant_id):
    class Down:
        def classify(self, text, task):
            raise TimeoutError("AI down")

    container.service._analysis._classifier = Down()

    result = container.service.handle_incoming(tenant_id, make_message("hello"))

    assert result.analysis["sentiment"] == "neutral"
    assert result.scheduled_steps == 3
    assert container.leads.get(result.lead_id).score == 10


def test_automation_rules_react_to_received_messages(app_container, classifier, make_message, tenant_id):
    app_container.automation_rules.create(
        tenant_id,
        AutomationRuleCreate.model_validate(
            {
                "name": "booking intent",
                "trigger_event": "whatsapp_message_received",
                "trigger_conditions": [{"field": "analysis.intent", "op": "eq", "value": "booking"}],
                "actions": [
                    {"type": "UPDATE_LEAD_STATUS", "config": {"status": "Qualified"}},
                    {"type": "ADD_NOTE_TO_LEAD", "config": {"note": "Asked: {{text}}", "note_type": "whatsapp"}},
                ],
            }
        ),
    )
    classifier.set(intent="booking")

    result = app_container.service.handle_incoming(tenant_id, make_message("book me in"))

    lead = app_container.leads.get(result.lead_id)
    assert lead.status == "Qualified"
    assert lead.notes.startswith("[WHATSAPP] ")
    assert lead.notes.endswith(": Asked: book me in")


def test_manual_message_creates_contacted_lead(app_container, transport, tenant_id):
    record = app_container.service.send_manual_message(tenant_id, "+55 (11) 99999-0000", "Hello from your coach")

    assert record.direction == "outbound"
    assert not record.is_automated
    assert transport.sent[0][1] == "5511999990000"
    lead = app_container.leads.get_by_phone(tenant_id, "5511999990000")
    assert lead.status == "Contacted"
    assert lead.id == record.lead_id


def test_manual_message_leaves_inbound_activity_untouched(app_container, make_message, tenant_id, clock):
    inbound = app_container.service.handle_incoming(tenant_id, make_message("hello"))
    before = app_container.leads.get(inbound.lead_id)

    clock.advance(hours=1)
    record = app_container.service.send_manual_message(tenant_id, "5511999990000", "Following up")

    after = app_container.leads.get(inbound.lead_id)
    assert record.lead_id == inbound.lead_id
    assert after.message_count == before.message_count == 1
    assert after.last_contact_at == before.last_contact_at
    assert after.status == before.status


def test_manual_message_errors(container, transport, tenant_id):
    with pytest.raises(ValueError):
        container.service.send_manual_message(tenant_id, "no digits", "hi")

    transport.set_connected(tenant_id, False)
    with pytest.raises(TransportError):
        container.service.send_manual_message(tenant_id, "5511999990000", "hi")
    assert container.leads.get_by_phone(tenant_id, "5511999990000") is None


def test_history_is_tenant_scoped(container, make_message, tenant_id):
    result = container.service.handle_incoming(tenant_id, make_message("hello"))

    with pytest.raises(LeadNotFoundError):
        container.service.history(uuid.uuid4(), result.lead_id)
    with pytest.raises(LeadNotFoundError):
        container.service.history(tenant_id, uuid.uuid4())


def test_history_limit_keeps_most_recent_in_order(container, make_message, tenant_id, clock):
    for text in ("one", "two", "three"):
        result = container.service.handle_incoming(tenant_id, make_message(text, is_group=True))
        clock.advance(seconds=1)

    items = container.service.history(tenant_id, result.lead_id, limit=2).items

    assert [m.body for m in items] == ["two", "three"]
