"""Structured output of the message classifier."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AnalysisResult(BaseModel):
    """Sentiment, intent and urgency of one inbound message.

    ``sentiment_score`` measures positivity: ``0`` is strongly negative,
    ``1`` strongly positive. Classifier responses may use camelCase keys.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sentiment: Literal["positive", "negative", "neutral"] = "neutral"
    sentiment_score: float = Field(default=0.5, ge=0.0, le=1.0)
    intent: str = "general"
    urgency: Literal["low", "high"] = "low"
    keywords: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    language: Optional[str] = None

    @field_validator("sentiment", "urgency", "intent", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @classmethod
    def fallback(cls) -> "AnalysisResult":
        return cls(
            sentiment="neutral",
            sentiment_score=0.5,
            intent="general",
            urgency="low",
            keywords=[],
            confidence=0.5,
        )

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


__all__ = ["AnalysisResult"]
