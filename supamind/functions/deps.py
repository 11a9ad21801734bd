"""Request-scoped accessors for collaborators stored on ``app.state``."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Request

from supamind.config import Settings
from supamind.infra.processing_store import ProcessingStore
from supamind.pipelines import PipelineClient
from supamind.security.rate_limit import RateLimitService
from supamind.security.webhook import WebhookAuthenticator


class InvalidRequestBody(ValueError):
    """Raised when a request body is not a JSON object."""


def _state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} is not configured")
    return value


def get_settings(request: Request) -> Settings:
    return _state(request, "settings")


def get_rate_limiter(request: Request) -> RateLimitService:
    return _state(request, "rate_limiter")


def get_webhook_authenticator(request: Request) -> WebhookAuthenticator:
    return _state(request, "webhook_authenticator")


def get_pipeline_client(request: Request) -> PipelineClient:
    return _state(request, "pipeline_client")


def get_processing_store(request: Request) -> ProcessingStore:
    return _state(request, "processing_store")


async def read_json_object(request: Request) -> Dict[str, Any]:
    """Parse the (possibly already consumed) raw body as a JSON object."""

    raw = await request.body()
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise InvalidRequestBody("body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise InvalidRequestBody("body must be a JSON object")
    return data


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
