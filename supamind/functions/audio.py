"""Audio overview generation and its pipeline callback."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, status

from supamind.config import Settings
from supamind.errors import PipelineError
from supamind.infra.processing_store import ProcessingStore
from supamind.pipelines import AUDIO_GENERATION, PipelineClient
from supamind.responses import json_error
from supamind.security.rate_limit import RateLimitService, RateLimitTier
from supamind.security.webhook import WebhookAuthenticator
from supamind.validation import is_valid_uuid, validate_audio_overview

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

router = APIRouter(tags=["audio"])

AUDIO_OVERVIEW_KIND = "audio_overview"
AUDIO_URL_TTL = timedelta(hours=24)


@router.post("/generate-audio-overview")
async def generate_audio_overview(
    request: Request,
    settings: Settings = Depends(get_settings),
    limiter: RateLimitService = Depends(get_rate_limiter),
    pipelines: PipelineClient = Depends(get_pipeline_client),
    store: ProcessingStore = Depends(get_processing_store),
):
    body = await read_json_object(request)
    validation = validate_audio_overview(body)
    if not validation.valid:
        return json_error(status.HTTP_400_BAD_REQUEST, "Validation failed", details=validation.errors)

    limited = await limiter.check_rate_limit(request, RateLimitTier.HIGH_COST, body["user_id"])
    if limited is not None:
        return limited

    notebook_id = body["notebook_id"]
    await store.create(notebook_id, AUDIO_OVERVIEW_KIND, {"status": "generating", "user_id": body["user_id"]})

    try:
        await pipelines.dispatch(
            AUDIO_GENERATION,
            {
                "notebook_id": notebook_id,
                "callback_url": settings.callback_url("audio-generation-callback"),
            },
        )
    except PipelineError as exc:
        logger.error("Audio generation dispatch failed", extra={"notebook_id": notebook_id})
        await store.update(notebook_id, {"status": "failed"})
        return json_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to start audio generation", details=exc.description
        )

    logger.info("Audio generation started", extra={"notebook_id": notebook_id})
    return {"success": True, "message": "Audio generation started", "status": "generating"}


@router.post("/audio-generation-callback")
async def audio_generation_callback(
    request: Request,
    authenticator: WebhookAuthenticator = Depends(get_webhook_authenticator),
    limiter: RateLimitService = Depends(get_rate_limiter),
    store: ProcessingStore = Depends(get_processing_store),
):
    rejection = await authenticator.authenticate(request)
    if rejection is not None:
        return rejection

    payload = await read_json_object(request)
    notebook_id = payload.get("notebook_id")
    if not is_valid_uuid(notebook_id):
        return json_error(status.HTTP_400_BAD_REQUEST, "Valid notebook_id (UUID) is required")

    limited = await limiter.check_rate_limit(request, RateLimitTier.CALLBACK, notebook_id)
    if limited is not None:
        return limited

    audio_url = payload.get("audio_url")
    if payload.get("status") == "success" and audio_url:
        update = {
            "status": "completed",
            "audio_url": audio_url,
            "audio_url_expires_at": (utc_now() + AUDIO_URL_TTL).isoformat(),
        }
    else:
        logger.error(
            "Audio generation failed",
            extra={"notebook_id": notebook_id, "reason": str(payload.get("error") or "unknown")},
        )
        update = {"status": "failed"}

    try:
        await store.update(notebook_id, update)
    except KeyError:
        return json_error(status.HTTP_404_NOT_FOUND, "Notebook not found")

    return {"success": True}
