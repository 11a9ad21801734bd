"""Application factory for the Supamind function layer.

Run with ``uvicorn --factory supamind.main:create_app``. Collaborators are
built once here and shared by every request through ``app.state``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from supamind.config import Settings
from supamind.functions import router as functions_router
from supamind.functions.deps import InvalidRequestBody
from supamind.infra.processing_store import ProcessingStore, create_processing_store
from supamind.pipelines import PipelineClient
from supamind.responses import json_error
from supamind.security import OriginGuardMiddleware, RateLimitService, WebhookAuthenticator

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    webhook_security: str


def create_app(
    settings: Settings | None = None,
    *,
    rate_limiter: RateLimitService | None = None,
    webhook_authenticator: WebhookAuthenticator | None = None,
    pipeline_client: PipelineClient | None = None,
    processing_store: ProcessingStore | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Anything not passed in is constructed from ``settings`` (or the
    environment), so missing counter store credentials fail here at boot
    rather than on the first request.
    """

    settings = settings or Settings.from_env()
    rate_limiter = rate_limiter or RateLimitService.from_settings(settings)
    webhook_authenticator = webhook_authenticator or WebhookAuthenticator.from_settings(settings)
    pipeline_client = pipeline_client or PipelineClient.from_settings(settings)
    processing_store = processing_store or create_processing_store(settings.processing_store_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await pipeline_client.close()
        await rate_limiter.close()
        await processing_store.close()

    app = FastAPI(title="Supamind Functions", lifespan=lifespan)
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter
    app.state.webhook_authenticator = webhook_authenticator
    app.state.pipeline_client = pipeline_client
    app.state.processing_store = processing_store

    app.add_middleware(
        OriginGuardMiddleware,
        allowed_origins=settings.allowed_origins,
        allow_extensions=settings.allow_extension_origins,
    )

    @app.exception_handler(InvalidRequestBody)
    async def invalid_body_handler(request: Request, exc: InvalidRequestBody):
        logger.info("Rejected malformed request body", extra={"path": request.url.path, "reason": str(exc)})
        return json_error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    @app.get("/health", status_code=status.HTTP_200_OK)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", webhook_security=webhook_authenticator.mode.value)

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(functions_router)
    logger.info("Function layer ready", extra={"webhook_security": webhook_authenticator.mode.value})
    return app
