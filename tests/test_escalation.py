import uuid

import pytest

from leadpilot.ai.schemas import AnalysisResult
from leadpilot.config import EscalationSettings
from leadpilot.escalation.policy import (
    REASON_NEGATIVE_SENTIMENT,
    REASON_REPEATED_NEGATIVE,
    EscalationPolicy,
)
from leadpilot.escalation.repository import (
    EscalationNotFoundError,
    InMemoryEscalationQueue,
    SqlAlchemyEscalationQueue,
)
from leadpilot.escalation.schemas import EscalationRecord
from leadpilot.events import EventType
from leadpilot.timeutils import utcnow


@pytest.fixture
def queue():
    return InMemoryEscalationQueue()


@pytest.fixture
def policy(queue, leads, bus, notifier):
    return EscalationPolicy(EscalationSettings(), queue, leads, event_bus=bus, notifier=notifier)


def test_negative_sentiment_below_threshold_escalates(
    policy, queue, notifier, captured_events, make_lead, make_message, tenant_id
):
    lead = make_lead()
    analysis = AnalysisResult(sentiment="negative", sentiment_score=0.5)

    assert policy.should_escalate(lead.id, analysis, make_message("I am not happy with this"))

    record = queue.get(lead.id)
    assert record.reason == REASON_NEGATIVE_SENTIMENT
    assert record.tenant_id == tenant_id
    assert record.message["text"] == "I am not happy with this"
    assert notifier.sent and "Ana Souza" in notifier.sent[0][1]
    assert captured_events[-1].event_type == EventType.ESCALATION_CREATED.value


def test_negative_sentiment_above_threshold_does_not_escalate(policy, queue, make_lead, make_message):
    lead = make_lead()
    analysis = AnalysisResult(sentiment="negative", sentiment_score=0.65)

    assert not policy.should_escalate(lead.id, analysis, make_message("meh"))
    assert queue.list(lead.tenant_id) == []


def test_urgent_keyword_escalates_regardless_of_sentiment(policy, make_lead, make_message):
    lead = make_lead()
    decision = policy.check(
        lead.id, AnalysisResult(sentiment="positive", sentiment_score=0.9), make_message("This is URGENT please")
    )
    assert decision.should_escalate
    assert decision.reason == "urgent_keyword:urgent"


def test_repeated_negative_messages_escalate(policy, leads, make_lead, make_message):
    lead = make_lead()
    for _ in range(3):
        leads.apply_score(lead.id, -3, ["Negative message sentiment"], negative=True)

    decision = policy.check(lead.id, AnalysisResult(), make_message("ok"))

    assert decision.should_escalate
    assert decision.reason == REASON_REPEATED_NEGATIVE


def test_custom_thresholds(queue, leads, make_lead, make_message):
    settings = EscalationSettings(negative_sentiment_threshold=0.3, urgent_keywords=("socorro",))
    policy = EscalationPolicy(settings, queue, leads)
    lead = make_lead()

    assert not policy.should_escalate(
        lead.id, AnalysisResult(sentiment="negative", sentiment_score=0.5), make_message("urgent")
    )
    assert policy.should_escalate(lead.id, AnalysisResult(), make_message("Socorro!"))


def test_notifier_failure_does_not_block_escalation(queue, leads, make_lead, make_message):
    class Failing:
        def notify(self, tenant_id, subject, body):
            raise RuntimeError("webhook down")

    policy = EscalationPolicy(EscalationSettings(), queue, leads, notifier=Failing())
    lead = make_lead()

    assert policy.should_escalate(lead.id, AnalysisResult(), make_message("emergency"))
    assert queue.get(lead.id) is not None


def test_resolve_removes_entry_and_emits_event(policy, captured_events, make_lead, make_message, tenant_id):
    lead = make_lead()
    policy.check(lead.id, AnalysisResult(), make_message("urgent"))

    with pytest.raises(EscalationNotFoundError):
        policy.get(uuid.uuid4(), lead.id)

    resolved = policy.resolve(tenant_id, lead.id)

    assert resolved.lead_id == lead.id
    assert policy.list(tenant_id) == []
    assert captured_events[-1].event_type == EventType.ESCALATION_RESOLVED.value
    with pytest.raises(EscalationNotFoundError):
        policy.resolve(tenant_id, lead.id)


def test_resolve_resets_negative_message_count(policy, leads, make_lead, make_message, tenant_id):
    lead = make_lead()
    for _ in range(3):
        leads.apply_score(lead.id, -3, ["Negative message sentiment"], negative=True)
    assert policy.should_escalate(lead.id, AnalysisResult(), make_message("ok"))

    policy.resolve(tenant_id, lead.id)

    assert leads.get(lead.id).negative_message_count == 0
    assert not policy.should_escalate(lead.id, AnalysisResult(), make_message("ok"))


def test_resolve_survives_counter_reset_failure(policy, leads, make_lead, make_message, tenant_id, monkeypatch):
    lead = make_lead()
    policy.check(lead.id, AnalysisResult(), make_message("urgent"))

    def broken(lead_id):
        raise RuntimeError("db down")

    monkeypatch.setattr(leads, "reset_negative_count", broken)

    assert policy.resolve(tenant_id, lead.id).lead_id == lead.id
    assert policy.list(tenant_id) == []


def test_one_pending_escalation_per_lead(session_factory, tenant_id):
    queue = SqlAlchemyEscalationQueue(session_factory)
    lead_id = uuid.uuid4()
    for reason in ("negative_sentiment", "urgent_keyword:help"):
        queue.record(
            EscalationRecord(
                lead_id=lead_id, tenant_id=tenant_id, reason=reason, message={"text": reason}, created_at=utcnow()
            )
        )

    items = queue.list(tenant_id)
    assert len(items) == 1
    assert items[0].reason == "urgent_keyword:help"
    assert queue.resolve(lead_id).message == {"text": "urgent_keyword:help"}
    assert queue.get(lead_id) is None
