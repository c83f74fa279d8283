"""Webhook ingestion routes for inbound WhatsApp traffic."""

import json
import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, Response, status
from starlette.concurrency import run_in_threadpool

from ..channels import get_adapter
from ..conversations import schemas as convo_schemas
from ..dependencies import WEBHOOK_RATE_LIMIT, ContainerDep, limiter

router = APIRouter(tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/api/webhooks/{tenant_id}/{channel}")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def ingest_webhook(
    tenant_id: UUID, channel: str, request: Request, container: ContainerDep
) -> Response:
    body_bytes = await request.body()
    try:
        payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=400, detail=f"Invalid JSON payload: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook payload must be an object")

    try:
        adapter_cls = get_adapter(channel)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    config = {"webhook_secret": container.settings.webhook_secret}
    adapter = adapter_cls(tenant_id=tenant_id)
    if not adapter.verify_signature(body_bytes, request.headers, config):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )
    normalized_messages = list(adapter.parse_incoming(payload, request.headers, config))
    if not normalized_messages:
        return Response(status_code=status.HTTP_202_ACCEPTED)

    results = []
    for normalized in normalized_messages:
        result = await run_in_threadpool(
            container.service.handle_incoming, tenant_id, normalized
        )
        results.append(result)
    response = convo_schemas.WebhookIngestResponse(
        processed_messages=len(results), results=results
    )
    return Response(content=response.model_dump_json(), media_type="application/json")
