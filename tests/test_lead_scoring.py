import uuid

import pytest

from leadpilot.ai.schemas import AnalysisResult
from leadpilot.automation.results import ErrorKind
from leadpilot.leads.scoring import LeadScoringUpdater, compute_interaction_score


def test_scoring_is_additive():
    analysis = AnalysisResult(sentiment="positive", intent="booking", urgency="high")
    score = compute_interaction_score(analysis)
    assert score.delta == 5 + 10 + 8
    assert score.reasons == ["Positive message sentiment", "High purchase intent", "High urgency"]


@pytest.mark.parametrize(
    "fields, delta",
    [
        ({"sentiment": "negative", "intent": "complaint"}, -3),
        ({"intent": "information"}, 3),
        ({"intent": "purchase"}, 10),
        ({"sentiment": "negative", "intent": "purchase", "urgency": "high"}, 15),
        ({}, 0),
    ],
)
def test_scoring_rules(fields, delta):
    assert compute_interaction_score(AnalysisResult(**fields)).delta == delta


def test_updater_applies_delta_and_records_history(leads, make_lead):
    lead = make_lead()
    updater = LeadScoringUpdater(leads)

    result = updater.apply_interaction_score(
        lead.id, AnalysisResult(sentiment="positive", intent="booking", urgency="high")
    )

    assert result.ok
    assert result.data["score"] == 33
    assert leads.get(lead.id).score == 33
    history = leads.score_history(lead.id)
    assert history[0].delta == 23
    assert "High urgency" in history[0].reasons


def test_negative_message_increments_counter(leads, make_lead):
    lead = make_lead()
    updater = LeadScoringUpdater(leads)

    for _ in range(2):
        updater.apply_interaction_score(lead.id, AnalysisResult(sentiment="negative", sentiment_score=0.2))

    stored = leads.get(lead.id)
    assert stored.negative_message_count == 2
    assert stored.score == 4


def test_neutral_message_leaves_lead_untouched(leads, make_lead):
    lead = make_lead()
    result = LeadScoringUpdater(leads).apply_interaction_score(lead.id, AnalysisResult())
    assert result.ok and result.data["delta"] == 0
    assert leads.score_history(lead.id) == []


def test_missing_lead_is_reported_not_raised(leads):
    result = LeadScoringUpdater(leads).apply_interaction_score(
        uuid.uuid4(), AnalysisResult(sentiment="positive")
    )
    assert not result.ok
    assert result.error is ErrorKind.MISSING_DATA
