"""Human handoff decision and queue."""

from .policy import EscalationPolicy
from .repository import (
    EscalationNotFoundError,
    EscalationQueue,
    InMemoryEscalationQueue,
    SqlAlchemyEscalationQueue,
)
from .schemas import EscalationList, EscalationRecord

__all__ = [
    "EscalationList",
    "EscalationNotFoundError",
    "EscalationPolicy",
    "EscalationQueue",
    "EscalationRecord",
    "InMemoryEscalationQueue",
    "SqlAlchemyEscalationQueue",
]
