"""Find-or-create leads for inbound contacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from ..conversations.models import NormalizedMessage
from ..events import EventBus, EventType, emit_trigger
from . import schemas
from .repository import LeadRepository

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "leads.local"


@dataclass(frozen=True)
class LeadResolution:
    lead: schemas.LeadRecord
    created: bool


class LeadResolver:
    """Resolve the lead behind an inbound WhatsApp message.

    Creation relies on the repository's atomic upsert, so two first messages
    racing from the same phone number still produce a single lead; only the
    caller that actually inserted the row sees ``created=True`` and emits
    ``lead_created``.
    """

    def __init__(
        self,
        repository: LeadRepository,
        *,
        event_bus: EventBus | None = None,
        initial_score: int = 10,
        source: str = "WhatsApp",
    ) -> None:
        self._repository = repository
        self._bus = event_bus
        self._initial_score = initial_score
        self._source = source

    def defaults_for(
        self, phone: str, message: NormalizedMessage, *, status: str = "New"
    ) -> schemas.LeadDefaults:
        return schemas.LeadDefaults(
            name=message.sender_name or phone,
            email=f"whatsapp_{phone}@{PLACEHOLDER_EMAIL_DOMAIN}",
            status=status,
            source=self._source,
            temperature="Warm",
            score=self._initial_score,
            first_message=message.text,
            first_contact_at=message.sent_at,
        )

    def resolve(
        self,
        tenant_id: UUID,
        phone: str,
        message: NormalizedMessage,
        *,
        status: str = "New",
        record_activity: bool = True,
    ) -> LeadResolution:
        """Find or create the lead for ``phone``.

        Outbound callers pass ``record_activity=False`` so sending to an
        existing lead leaves its inbound counters alone.
        """

        defaults = self.defaults_for(phone, message, status=status)
        lead, created = self._repository.upsert_for_contact(tenant_id, phone, defaults)
        if created:
            logger.info(
                "Created lead from WhatsApp contact",
                extra={"tenant_id": str(tenant_id), "lead_id": str(lead.id)},
            )
            emit_trigger(
                self._bus,
                EventType.LEAD_CREATED,
                tenant_id=tenant_id,
                lead_id=lead.id,
                lead=lead.template_context(),
                source=self._source,
            )
            return LeadResolution(lead=lead, created=True)
        if not record_activity:
            return LeadResolution(lead=lead, created=False)
        lead = self._repository.record_activity(lead.id, message.sent_at)
        return LeadResolution(lead=lead, created=False)


__all__ = ["LeadResolution", "LeadResolver", "PLACEHOLDER_EMAIL_DOMAIN"]
