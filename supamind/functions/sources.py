"""Additional notebook sources and the scheduled podcast feed sweep."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status

from supamind.errors import PipelineError
from supamind.pipelines import ADDITIONAL_SOURCES, PODCAST_FEED, PipelineClient
from supamind.responses import json_error
from supamind.security.rate_limit import RateLimitService, RateLimitTier
from supamind.validation import is_valid_uuid, sanitize_string, validate_url_list

from .deps import get_pipeline_client, get_rate_limiter, read_json_object, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sources"])

MULTIPLE_WEBSITES = "multiple-websites"
COPIED_TEXT = "copied-text"
ADDITIONAL_SOURCE_TYPES = (MULTIPLE_WEBSITES, COPIED_TEXT)

MAX_TITLE_LENGTH = 500
MAX_COPIED_TEXT_LENGTH = 100000


def _additional_sources_payload(body: Dict[str, Any]) -> Dict[str, Any]:
    source_type = body["type"]
    if source_type == MULTIPLE_WEBSITES:
        return {
            "type": source_type,
            "notebookId": body["notebookId"],
            "urls": body["urls"],
            "sourceIds": body.get("sourceIds"),
            "user_id": body["userId"],
            "timestamp": body.get("timestamp"),
        }
    source_ids = body.get("sourceIds") or []
    return {
        "type": source_type,
        "notebookId": body["notebookId"],
        "title": sanitize_string(body.get("title"), MAX_TITLE_LENGTH),
        "content": sanitize_string(body.get("content"), MAX_COPIED_TEXT_LENGTH),
        "sourceId": source_ids[0] if isinstance(source_ids, list) and source_ids else None,
        "user_id": body["userId"],
        "timestamp": body.get("timestamp"),
    }


@router.post("/process-additional-sources")
async def process_additional_sources(
    request: Request,
    limiter: RateLimitService = Depends(get_rate_limiter),
    pipelines: PipelineClient = Depends(get_pipeline_client),
):
    body = await read_json_object(request)
    if not is_valid_uuid(body.get("notebookId")):
        return json_error(status.HTTP_400_BAD_REQUEST, "Valid notebookId (UUID) is required")
    if not is_valid_uuid(body.get("userId")):
        return json_error(status.HTTP_400_BAD_REQUEST, "Valid userId (UUID) is required")

    limited = await limiter.check_rate_limit(request, RateLimitTier.MEDIUM_COST, body["userId"])
    if limited is not None:
        return limited

    source_type = body.get("type")
    if source_type not in ADDITIONAL_SOURCE_TYPES:
        return json_error(
            status.HTTP_400_BAD_REQUEST, "Valid type is required (multiple-websites or copied-text)"
        )
    if source_type == MULTIPLE_WEBSITES:
        validation = validate_url_list(body.get("urls") or [])
        if not validation.valid:
            return json_error(status.HTTP_400_BAD_REQUEST, "URL validation failed", details=validation.errors)

    logger.info(
        "Received additional sources",
        extra={"source_type": source_type, "notebook_id": body["notebookId"], "user_id": body["userId"]},
    )

    if not pipelines.is_configured(ADDITIONAL_SOURCES):
        logger.error("Additional sources pipeline is not configured")
        return json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Additional sources webhook URL not configured")

    try:
        result = await pipelines.dispatch(ADDITIONAL_SOURCES, _additional_sources_payload(body))
    except PipelineError as exc:
        return json_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Webhook request failed: {exc.status_code or 'unreachable'}",
        )

    return {
        "success": True,
        "message": f"{source_type} data sent to webhook successfully",
        "webhookResponse": result,
    }


@router.post("/scheduled-podcast-processing")
async def scheduled_podcast_processing(
    request: Request,
    limiter: RateLimitService = Depends(get_rate_limiter),
    pipelines: PipelineClient = Depends(get_pipeline_client),
):
    # Triggered by a scheduler, so there is no user to key on.
    limited = await limiter.check_rate_limit(request, RateLimitTier.LOW_COST)
    if limited is not None:
        return limited

    if not pipelines.is_configured(PODCAST_FEED):
        logger.error("Podcast feed pipeline is not configured")
        return json_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Podcast feed processing webhook URL not configured"
        )

    logger.info("Starting scheduled podcast processing")
    try:
        result = await pipelines.dispatch(
            PODCAST_FEED, {"trigger": "scheduled", "timestamp": utc_now().isoformat()}
        )
    except PipelineError as exc:
        return json_error(
            status.HTTP_502_BAD_GATEWAY, "Podcast feed processing failed", upstream_status=exc.status_code
        )

    return {"message": "Scheduled podcast processing triggered", "result": result}
