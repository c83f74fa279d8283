import pytest
import requests

from leadpilot.ai.client import (
    ANALYSIS_TASK,
    AIClientError,
    AnalysisClient,
    HttpAIClient,
    KeywordClassifier,
)
from leadpilot.ai.schemas import AnalysisResult


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


@pytest.fixture
def posted(monkeypatch):
    calls: list[dict] = []
    responses: list = []

    def fake_post(self, url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        outcome = responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(requests.Session, "post", fake_post)
    return calls, responses


def test_http_classifier_parses_camel_case_payload(posted):
    calls, responses = posted
    responses.append(
        FakeResponse(
            {
                "result": {
                    "sentiment": "Negative",
                    "sentimentScore": 0.2,
                    "intent": "complaint",
                    "urgency": "high",
                    "keywords": ["refund"],
                    "confidence": 0.8,
                }
            }
        )
    )
    client = AnalysisClient(HttpAIClient("http://ai.local/", api_key="k", timeout=3))

    result = client.analyze("I want a refund now")

    assert result.sentiment == "negative"
    assert result.sentiment_score == 0.2
    assert result.urgency == "high"
    assert calls[0]["url"] == "http://ai.local/classify"
    assert calls[0]["json"] == {"text": "I want a refund now", "task": ANALYSIS_TASK}
    assert calls[0]["headers"]["Authorization"] == "Bearer k"
    assert calls[0]["timeout"] == 3


@pytest.mark.parametrize(
    "outcome",
    [
        requests.Timeout("slow"),
        FakeResponse({}, status_code=502),
        FakeResponse(ValueError("not json")),
        FakeResponse({"sentiment": "ecstatic"}),
        FakeResponse(["not", "an", "object"]),
    ],
)
def test_analysis_falls_back_on_any_failure(posted, outcome):
    _, responses = posted
    responses.append(outcome)

    result = AnalysisClient(HttpAIClient("http://ai.local")).analyze("hello")

    assert result == AnalysisResult.fallback()
    assert (result.sentiment, result.sentiment_score, result.intent, result.urgency) == (
        "neutral",
        0.5,
        "general",
        "low",
    )


def test_analysis_survives_unexpected_classifier_errors():
    class Broken:
        def classify(self, text, task):
            raise RuntimeError("boom")

    assert AnalysisClient(Broken()).analyze("hi") == AnalysisResult.fallback()


def test_generate_copy_and_score_lead(posted):
    calls, responses = posted
    responses.extend([FakeResponse({"text": "Welcome!"}), FakeResponse({"score": 72})])
    client = HttpAIClient("http://ai.local")

    assert client.generate_copy("Write a welcome", {"lead": {"name": "Ana"}}) == "Welcome!"
    assert client.score_lead({"name": "Ana"}) == {"score": 72}
    assert calls[1]["url"].endswith("/score-lead")


def test_generate_copy_without_text_raises(posted):
    _, responses = posted
    responses.append(FakeResponse({"unexpected": True}))
    with pytest.raises(AIClientError):
        HttpAIClient("http://ai.local").generate_copy("p", {})


def test_keyword_classifier_signals():
    classifier = KeywordClassifier()

    unhappy = AnalysisResult.model_validate(classifier.classify("This is terrible, I want a refund"))
    assert unhappy.sentiment == "negative"
    assert unhappy.sentiment_score < 0.5
    assert unhappy.intent == "complaint"

    keen = AnalysisResult.model_validate(classifier.classify("Great! Can I book a session ASAP?"))
    assert keen.sentiment == "positive"
    assert keen.intent == "booking"
    assert keen.urgency == "high"

    blank = AnalysisResult.model_validate(classifier.classify(""))
    assert blank.sentiment == "neutral" and blank.language is None
