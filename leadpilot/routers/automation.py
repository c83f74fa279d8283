"""Management routes for conversation rules and automation rules."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, Response, status

from ..automation import schemas
from ..automation.repository import RuleConflictError, RuleNotFoundError
from ..dependencies import ContainerDep

router = APIRouter(prefix="/api/tenants/{tenant_id}", tags=["automation"])


def _not_found(exc: RuleNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


# Conversation rules ---------------------------------------------------------


@router.get("/conversation-rules", response_model=list[schemas.ConversationRuleRecord])
def list_conversation_rules(tenant_id: UUID, container: ContainerDep):
    return container.conversation_rules.list(tenant_id)


@router.post(
    "/conversation-rules",
    response_model=schemas.ConversationRuleRecord,
    status_code=status.HTTP_201_CREATED,
)
def create_conversation_rule(
    tenant_id: UUID, payload: schemas.ConversationRuleCreate, container: ContainerDep
):
    try:
        rule = container.conversation_rules.create(tenant_id, payload)
    except RuleConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    # A tenant managing its own rules is not auto-seeded later.
    container.conversation_rules.claim_default_seed(tenant_id)
    return rule


@router.post(
    "/conversation-rules/defaults",
    response_model=list[schemas.ConversationRuleRecord],
)
def seed_default_rules(tenant_id: UUID, container: ContainerDep):
    return container.rule_engine.ensure_defaults(tenant_id)


@router.patch("/conversation-rules/{key}", response_model=schemas.ConversationRuleRecord)
def toggle_conversation_rule(
    tenant_id: UUID, key: str, payload: schemas.RuleToggle, container: ContainerDep
):
    try:
        return container.conversation_rules.set_active(tenant_id, key, payload.is_active)
    except RuleNotFoundError as exc:
        raise _not_found(exc) from exc


@router.delete("/conversation-rules/{key}", status_code=status.HTTP_204_NO_CONTENT)
def delete_conversation_rule(tenant_id: UUID, key: str, container: ContainerDep) -> Response:
    try:
        container.conversation_rules.delete(tenant_id, key)
    except RuleNotFoundError as exc:
        raise _not_found(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Automation rules --------------------------------------------------------------


@router.get("/automation-rules", response_model=list[schemas.AutomationRuleRecord])
def list_automation_rules(tenant_id: UUID, container: ContainerDep):
    return container.automation_rules.list(tenant_id)


@router.post(
    "/automation-rules",
    response_model=schemas.AutomationRuleRecord,
    status_code=status.HTTP_201_CREATED,
)
def create_automation_rule(
    tenant_id: UUID, payload: schemas.AutomationRuleCreate, container: ContainerDep
):
    try:
        return container.automation_rules.create(tenant_id, payload)
    except RuleConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/automation-rules/{rule_id}", response_model=schemas.AutomationRuleRecord)
def get_automation_rule(tenant_id: UUID, rule_id: UUID, container: ContainerDep):
    try:
        return container.automation_rules.get(tenant_id, rule_id)
    except RuleNotFoundError as exc:
        raise _not_found(exc) from exc


@router.patch("/automation-rules/{rule_id}", response_model=schemas.AutomationRuleRecord)
def toggle_automation_rule(
    tenant_id: UUID, rule_id: UUID, payload: schemas.RuleToggle, container: ContainerDep
):
    try:
        return container.automation_rules.set_active(tenant_id, rule_id, payload.is_active)
    except RuleNotFoundError as exc:
        raise _not_found(exc) from exc


@router.delete("/automation-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_automation_rule(tenant_id: UUID, rule_id: UUID, container: ContainerDep) -> Response:
    try:
        container.automation_rules.delete(tenant_id, rule_id)
    except RuleNotFoundError as exc:
        raise _not_found(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
