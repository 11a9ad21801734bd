"""Notebook chat messages answered by the chat pipeline."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from supamind.errors import PipelineError
from supamind.pipelines import CHAT, PipelineClient
from supamind.responses import json_error
from supamind.security.rate_limit import RateLimitService, RateLimitTier
from supamind.validation import MAX_MESSAGE_LENGTH, sanitize_string, validate_chat_message

from .deps import get_pipeline_client, get_rate_limiter, read_json_object, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post("/send-chat-message")
async def send_chat_message(
    request: Request,
    limiter: RateLimitService = Depends(get_rate_limiter),
    pipelines: PipelineClient = Depends(get_pipeline_client),
):
    body = await read_json_object(request)
    validation = validate_chat_message(body)
    if not validation.valid:
        return json_error(status.HTTP_400_BAD_REQUEST, "Validation failed", details=validation.errors)

    limited = await limiter.check_rate_limit(request, RateLimitTier.HIGH_COST, body["user_id"])
    if limited is not None:
        return limited

    message = sanitize_string(body["message"], MAX_MESSAGE_LENGTH)
    logger.info(
        "Received chat message",
        extra={"session_id": body["session_id"], "user_id": body["user_id"], "message_length": len(message)},
    )

    if not pipelines.is_configured(CHAT):
        logger.error("Chat pipeline is not configured")
        return json_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Chat pipeline not configured")

    try:
        result = await pipelines.dispatch(
            CHAT,
            {
                "session_id": body["session_id"],
                "message": message,
                "user_id": body["user_id"],
                "timestamp": utc_now().isoformat(),
            },
        )
    except PipelineError as exc:
        return json_error(status.HTTP_502_BAD_GATEWAY, "Chat pipeline failed", upstream_status=exc.status_code)

    return {"success": True, "data": result}
