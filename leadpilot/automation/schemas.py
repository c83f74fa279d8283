"""Pydantic schemas for automation and conversation rules."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from ..timeutils import UtcDatetime

_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_\-]*$")


class Condition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field: str = Field(min_length=1)
    operator: str = Field(default="eq", validation_alias=AliasChoices("operator", "op"))
    value: Any = None


class ActionSpec(BaseModel):
    type: str = Field(min_length=1)
    config: dict[str, Any] = Field(default_factory=dict)
    conditions: list[Condition] = Field(default_factory=list)
    order: Optional[int] = None
    delay_seconds: int = Field(default=0, ge=0)

    @field_validator("type")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class AutomationRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    trigger_event: str = Field(min_length=1, max_length=64)
    trigger_conditions: list[Condition] = Field(default_factory=list)
    trigger_logic: Literal["AND", "OR"] = "AND"
    actions: list[ActionSpec] = Field(min_length=1)
    is_active: bool = True

    def ordered_actions(self) -> list[ActionSpec]:
        """Actions sorted by ``order``; unordered actions keep list position."""

        indexed = list(enumerate(self.actions))
        indexed.sort(key=lambda item: (item[1].order if item[1].order is not None else item[0]))
        return [action for _, action in indexed]


class AutomationRuleRecord(AutomationRuleCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    created_at: Optional[UtcDatetime] = None


class ConversationTrigger(str, Enum):
    FIRST_MESSAGE = "first_message"
    NEGATIVE_SENTIMENT = "negative_sentiment"
    URGENT_MESSAGE = "urgent_message"
    KEYWORD_MATCH = "keyword_match"


class RuleStep(BaseModel):
    delay_ms: int = Field(ge=0)
    message: str

    @field_validator("message")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("step message must not be empty")
        return value


class ConversationRuleCreate(BaseModel):
    key: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    trigger: ConversationTrigger
    keywords: list[str] = Field(default_factory=list)
    steps: list[RuleStep] = Field(min_length=1)
    is_active: bool = True

    @field_validator("key")
    @classmethod
    def _slug(cls, value: str) -> str:
        if not _KEY_PATTERN.match(value):
            raise ValueError("key must be lowercase letters, digits, '_' or '-'")
        return value

    @field_validator("keywords")
    @classmethod
    def _clean_keywords(cls, value: list[str]) -> list[str]:
        return [item.strip().lower() for item in value if item and item.strip()]

    @model_validator(mode="after")
    def _keywords_for_match(self) -> "ConversationRuleCreate":
        if self.trigger is ConversationTrigger.KEYWORD_MATCH and not self.keywords:
            raise ValueError("keyword_match rules require at least one keyword")
        return self


class ConversationRuleRecord(ConversationRuleCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID


class RuleToggle(BaseModel):
    is_active: bool


class ScheduledStepRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    lead_id: Optional[UUID] = None
    kind: str
    rule_id: Optional[str] = None
    step_index: int = 0
    payload: dict[str, Any] = Field(default_factory=dict)
    due_at: UtcDatetime
    status: str = "pending"
    attempts: int = 0
    last_error: Optional[str] = None
    completed_at: Optional[UtcDatetime] = None


__all__ = [
    "ActionSpec",
    "AutomationRuleCreate",
    "AutomationRuleRecord",
    "Condition",
    "ConversationRuleCreate",
    "ConversationRuleRecord",
    "ConversationTrigger",
    "RuleStep",
    "RuleToggle",
    "ScheduledStepRecord",
]
