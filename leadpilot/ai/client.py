"""Clients for the external AI classifier and copy generator."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol

import requests
from langdetect import LangDetectException, detect
from pydantic import ValidationError

from .schemas import AnalysisResult

logger = logging.getLogger(__name__)

#: Task hint sent with every classification request.
ANALYSIS_TASK = "sentiment_intent_urgency"


class Classifier(Protocol):
    def classify(self, text: str, task: str) -> Mapping[str, Any]: ...


class CopyWriter(Protocol):
    def generate_copy(self, prompt: str, context: Mapping[str, Any]) -> str: ...

    def score_lead(self, lead: Mapping[str, Any]) -> Mapping[str, Any]: ...


class AIClientError(RuntimeError):
    """Raised by HTTP collaborators when the AI service misbehaves."""


class HttpAIClient:
    """JSON-over-HTTP client for the hosted AI service."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self.session = session or requests.Session()
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = self.session.post(
                f"{self._base_url}/{path.lstrip('/')}",
                json=body,
                headers=self._headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise AIClientError(f"AI request to {path} failed: {exc}") from exc
        if not isinstance(data, dict):
            raise AIClientError(f"AI response from {path} is not an object")
        return data

    def classify(self, text: str, task: str) -> Mapping[str, Any]:
        data = self._post("classify", {"text": text, "task": task})
        return data.get("result", data)

    def generate_copy(self, prompt: str, context: Mapping[str, Any]) -> str:
        data = self._post("generate", {"prompt": prompt, "context": dict(context)})
        text = data.get("text") or data.get("content")
        if not isinstance(text, str):
            raise AIClientError("AI copy response did not include text")
        return text

    def score_lead(self, lead: Mapping[str, Any]) -> Mapping[str, Any]:
        return self._post("score-lead", {"lead": dict(lead)})


_POSITIVE = {"great", "good", "awesome", "love", "thanks", "thank", "interested", "excited"}
_NEGATIVE = {"bad", "terrible", "angry", "hate", "upset", "cancel", "complain", "refund", "worst", "disappointed"}
_URGENT = re.compile(r"\b(urgent|asap|immediately|emergency|right now)\b", re.I)

_INTENT_PATTERNS = {
    "purchase": re.compile(r"\b(buy|price|pricing|cost|pay|enrol+|sign\s*up|join)\b", re.I),
    "booking": re.compile(r"\b(book|schedule|appointment|session|slot)\b", re.I),
    "complaint": re.compile(r"\b(complain|not\s+working|refund)\b", re.I),
    "information": re.compile(r"\b(info|information|details|how|what|when|where)\b|\?", re.I),
}
_WORD = re.compile(r"[a-z']+")


class KeywordClassifier:
    """Deterministic classifier used when no AI service is configured."""

    def classify(self, text: str, task: str = ANALYSIS_TASK) -> Mapping[str, Any]:
        text = text or ""
        words = set(_WORD.findall(text.lower()))
        positives = sorted(words & _POSITIVE)
        negatives = sorted(words & _NEGATIVE)
        sentiment = "neutral"
        score = 0.5
        if positives or negatives:
            balance = (len(positives) - len(negatives)) / (len(positives) + len(negatives))
            score = 0.5 + balance / 2
            if balance > 0:
                sentiment = "positive"
            elif balance < 0:
                sentiment = "negative"
        intent = "general"
        for label, pattern in _INTENT_PATTERNS.items():
            if pattern.search(text):
                intent = label
                break
        urgent = _URGENT.findall(text)
        return {
            "sentiment": sentiment,
            "sentimentScore": round(score, 3),
            "intent": intent,
            "urgency": "high" if urgent else "low",
            "keywords": positives + negatives + [u.lower() for u in urgent],
            "confidence": 0.6 if (positives or negatives or intent != "general") else 0.4,
            "language": self._language(text),
        }

    @staticmethod
    def _language(text: str) -> str | None:
        try:
            return detect(text) if text.strip() else None
        except LangDetectException:
            return None


class AnalysisClient:
    """Classify inbound text; never raises.

    Any classifier failure (network, timeout, malformed payload) yields
    :meth:`AnalysisResult.fallback` so the pipeline keeps going.
    """

    def __init__(self, classifier: Classifier | None = None) -> None:
        self._classifier = classifier or KeywordClassifier()

    def analyze(self, text: str) -> AnalysisResult:
        try:
            raw = self._classifier.classify(text or "", ANALYSIS_TASK)
            return AnalysisResult.model_validate(raw)
        except (ValidationError, AIClientError, TypeError, ValueError) as exc:
            logger.warning("AI analysis failed; using fallback: %s", exc)
        except Exception:
            logger.exception("Unexpected AI classifier failure; using fallback")
        return AnalysisResult.fallback()


__all__ = [
    "ANALYSIS_TASK",
    "AIClientError",
    "AnalysisClient",
    "Classifier",
    "CopyWriter",
    "HttpAIClient",
    "KeywordClassifier",
]
