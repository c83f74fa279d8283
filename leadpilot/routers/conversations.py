"""Conversation history, manual replies and escalation queue routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from ..conversations import schemas as convo_schemas
from ..dependencies import ContainerDep
from ..escalation.repository import EscalationNotFoundError
from ..escalation.schemas import EscalationList, EscalationRecord
from ..leads.repository import LeadNotFoundError
from ..messaging.transport import TransportError

router = APIRouter(prefix="/api/tenants/{tenant_id}", tags=["conversations"])


@router.get("/leads/{lead_id}/messages", response_model=convo_schemas.ConversationHistory)
def get_history(
    tenant_id: UUID,
    lead_id: UUID,
    container: ContainerDep,
    limit: int = Query(50, ge=1, le=500),
) -> convo_schemas.ConversationHistory:
    try:
        return container.service.history(tenant_id, lead_id, limit=limit)
    except LeadNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post(
    "/messages",
    response_model=convo_schemas.MessageRecord,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    tenant_id: UUID, payload: convo_schemas.ManualMessageRequest, container: ContainerDep
) -> convo_schemas.MessageRecord:
    try:
        return container.service.send_manual_message(tenant_id, payload.phone, payload.body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TransportError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.get("/escalations", response_model=EscalationList)
def list_escalations(tenant_id: UUID, container: ContainerDep) -> EscalationList:
    items = container.escalation.list(tenant_id)
    return EscalationList(items=items, total=len(items))


@router.get("/escalations/{lead_id}", response_model=EscalationRecord)
def get_escalation(tenant_id: UUID, lead_id: UUID, container: ContainerDep) -> EscalationRecord:
    try:
        return container.escalation.get(tenant_id, lead_id)
    except EscalationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/escalations/{lead_id}/resolve", response_model=EscalationRecord)
def resolve_escalation(
    tenant_id: UUID, lead_id: UUID, container: ContainerDep
) -> EscalationRecord:
    try:
        return container.escalation.resolve(tenant_id, lead_id)
    except EscalationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
