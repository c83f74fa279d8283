"""Lead records, resolution and scoring."""

from .repository import (
    InMemoryLeadRepository,
    LeadNotFoundError,
    LeadRepository,
    SqlAlchemyLeadRepository,
)
from .resolver import LeadResolution, LeadResolver
from .scoring import LeadScoringUpdater, ScoreDelta, compute_interaction_score

__all__ = [
    "InMemoryLeadRepository",
    "LeadNotFoundError",
    "LeadRepository",
    "LeadResolution",
    "LeadResolver",
    "LeadScoringUpdater",
    "ScoreDelta",
    "SqlAlchemyLeadRepository",
    "compute_interaction_score",
]
