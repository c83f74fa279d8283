"""Interaction scoring driven by message analysis."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from ..ai.schemas import AnalysisResult
from ..automation.results import ActionResult, ErrorKind
from .repository import LeadNotFoundError, LeadRepository

logger = logging.getLogger(__name__)

HIGH_INTENT = frozenset({"purchase", "booking"})


@dataclass(frozen=True)
class ScoreDelta:
    delta: int = 0
    reasons: list[str] = field(default_factory=list)


def compute_interaction_score(analysis: AnalysisResult) -> ScoreDelta:
    """Sum every matching rule; rules are independent of each other."""

    delta = 0
    reasons: list[str] = []
    if analysis.sentiment == "positive":
        delta += 5
        reasons.append("Positive message sentiment")
    elif analysis.sentiment == "negative":
        delta -= 3
        reasons.append("Negative message sentiment")
    if analysis.intent in HIGH_INTENT:
        delta += 10
        reasons.append("High purchase intent")
    elif analysis.intent == "information":
        delta += 3
        reasons.append("Information seeking")
    if analysis.urgency == "high":
        delta += 8
        reasons.append("High urgency")
    return ScoreDelta(delta=delta, reasons=reasons)


class LeadScoringUpdater:
    """Apply interaction scores to the lead's cumulative total.

    Negative messages also bump ``negative_message_count`` in the same
    atomic update; escalation reads that counter.
    """

    def __init__(self, repository: LeadRepository) -> None:
        self._repository = repository

    def apply_interaction_score(self, lead_id: UUID, analysis: AnalysisResult) -> ActionResult:
        score = compute_interaction_score(analysis)
        negative = analysis.sentiment == "negative"
        if score.delta == 0 and not negative:
            return ActionResult.success("no score change", delta=0)
        try:
            lead = self._repository.apply_score(
                lead_id, score.delta, score.reasons, negative=negative
            )
        except LeadNotFoundError as exc:
            logger.warning("Cannot score missing lead %s", lead_id)
            return ActionResult.failure(ErrorKind.MISSING_DATA, str(exc))
        except Exception as exc:
            logger.exception("Failed to update lead score", extra={"lead_id": str(lead_id)})
            return ActionResult.failure(ErrorKind.PERSISTENCE, str(exc))
        return ActionResult.success(
            ", ".join(score.reasons), delta=score.delta, score=lead.score, lead=lead
        )


__all__ = ["HIGH_INTENT", "LeadScoringUpdater", "ScoreDelta", "compute_interaction_score"]
