"""Document processing trigger and its pipeline callback."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status

from supamind.config import Settings
from supamind.errors import PipelineError
from supamind.infra.processing_store import ProcessingStore
from supamind.pipelines import DOCUMENT_PROCESSING, PipelineClient
from supamind.responses import json_error
from supamind.security.rate_limit import RateLimitService, RateLimitTier
from supamind.security.webhook import WebhookAuthenticator
from supamind.validation import is_valid_uuid, validate_document_processing

from .deps import (
    get_pipeline_client,
    get_processing_store,
    get_rate_limiter,
    get_settings,
    get_webhook_authenticator,
    read_json_object,
    utc_now,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["documents"])

SOURCE_KIND = "source"


@router.post("/process-document")
async def process_document(
    request: Request,
    settings: Settings = Depends(get_settings),
    limiter: RateLimitService = Depends(get_rate_limiter),
    pipelines: PipelineClient = Depends(get_pipeline_client),
    store: ProcessingStore = Depends(get_processing_store),
):
    body = await read_json_object(request)
    validation = validate_document_processing(body)
    if not validation.valid:
        return json_error(status.HTTP_400_BAD_REQUEST, "Validation failed", details=validation.errors)

    limited = await limiter.check_rate_limit(request, RateLimitTier.MEDIUM_COST, body["userId"])
    if limited is not None:
        return limited

    source_id = body["sourceId"]
    logger.info(
        "Processing document",
        extra={"source_id": source_id, "source_type": body["sourceType"], "user_id": body["userId"]},
    )
    await store.create(
        source_id,
        SOURCE_KIND,
        {
            "status": "processing",
            "user_id": body["userId"],
            "notebook_id": body.get("notebookId"),
            "source_type": body["sourceType"],
            "file_path": body["filePath"],
        },
    )

    if not pipelines.is_configured(DOCUMENT_PROCESSING):
        logger.error("Document processing pipeline is not configured")
        await store.update(source_id, {"status": "failed"})
        return json_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Document processing webhook URL not configured"
        )

    payload = {
        "source_id": source_id,
        "file_path": body["filePath"],
        "source_type": body["sourceType"],
        "user_id": body["userId"],
        "notebook_id": body.get("notebookId"),
        "callback_url": settings.callback_url("process-document-callback"),
    }
    try:
        result = await pipelines.dispatch(DOCUMENT_PROCESSING, payload)
    except PipelineError as exc:
        await store.update(source_id, {"status": "failed"})
        return json_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Document processing failed", details=exc.description
        )

    return {"success": True, "message": "Document processing initiated", "result": result}


@router.post("/process-document-callback")
async def process_document_callback(
    request: Request,
    authenticator: WebhookAuthenticator = Depends(get_webhook_authenticator),
    limiter: RateLimitService = Depends(get_rate_limiter),
    store: ProcessingStore = Depends(get_processing_store),
):
    rejection = await authenticator.authenticate(request)
    if rejection is not None:
        return rejection

    payload = await read_json_object(request)
    source_id = payload.get("source_id")
    if not is_valid_uuid(source_id):
        return json_error(status.HTTP_400_BAD_REQUEST, "Valid source_id is required")

    limited = await limiter.check_rate_limit(request, RateLimitTier.CALLBACK, source_id)
    if limited is not None:
        return limited

    update: Dict[str, Any] = {
        "status": payload.get("status") or "completed",
        "updated_at": utc_now().isoformat(),
    }
    for field in ("content", "summary", "image_url"):
        if payload.get(field):
            update[field] = payload[field]
    title = payload.get("title") or payload.get("display_name")
    if title:
        update["title"] = title
    if payload.get("error"):
        logger.error("Document processing failed", extra={"source_id": source_id})
        update["status"] = "failed"
        update["error"] = str(payload["error"])

    try:
        record = await store.update(source_id, update)
    except KeyError:
        return json_error(status.HTTP_404_NOT_FOUND, "Source not found")

    logger.info("Source updated", extra={"source_id": source_id, "status": update["status"]})
    return {"success": True, "message": "Source updated successfully", "data": record}
