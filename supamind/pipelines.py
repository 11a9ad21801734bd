"""Async client for the external webhook-driven automation pipelines.

Document processing, chat answers, audio generation, additional sources and
podcast feeds all run in external workflow pipelines reached over HTTP. Each pipeline is a single webhook URL;
when a shared secret is configured every dispatch is signed with the same
HMAC scheme the pipelines use for their callbacks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import httpx

from supamind.config import DEFAULT_SIGNATURE_HEADER
from supamind.errors import PipelineError
from supamind.metrics import record_pipeline_dispatch
from supamind.security.webhook import create_signed_webhook_request, serialize_payload

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from supamind.config import Settings

logger = logging.getLogger(__name__)

DOCUMENT_PROCESSING = "document_processing"
CHAT = "chat"
AUDIO_GENERATION = "audio_generation"
ADDITIONAL_SOURCES = "additional_sources"
PODCAST_FEED = "podcast_feed"


class PipelineClient:
    """Dispatch JSON payloads to configured pipeline webhooks."""

    def __init__(
        self,
        endpoints: Mapping[str, str],
        *,
        secret: str | None = None,
        auth_header: str | None = None,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoints = dict(endpoints)
        self._secret = secret
        self._auth_header = auth_header
        self._signature_header = signature_header
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PipelineClient":
        return cls(
            settings.pipeline_endpoints,
            secret=settings.webhook_secret,
            auth_header=settings.pipeline_auth_header,
            signature_header=settings.webhook_signature_header,
            timeout=settings.pipeline_timeout,
        )

    def is_configured(self, pipeline: str) -> bool:
        return pipeline in self._endpoints

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PipelineClient":
        self._ensure_client()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def dispatch(self, pipeline: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Send ``payload`` to ``pipeline`` and return its JSON reply.

        Raises :class:`PipelineError` when the pipeline is not configured, is
        unreachable, or answers with a non-2xx status.
        """

        url = self._endpoints.get(pipeline)
        if not url:
            record_pipeline_dispatch(pipeline, "not_configured")
            raise PipelineError(pipeline, "webhook URL not configured")

        headers: Dict[str, str] = {}
        if self._auth_header:
            headers["Authorization"] = self._auth_header

        client = self._ensure_client()
        logger.info("Dispatching to pipeline", extra={"pipeline": pipeline, "signed": bool(self._secret)})
        try:
            if self._secret:
                response = await create_signed_webhook_request(
                    url,
                    payload,
                    self._secret,
                    headers,
                    client=client,
                    header_name=self._signature_header,
                )
            else:
                headers["Content-Type"] = "application/json"
                response = await client.post(
                    url, content=serialize_payload(payload).encode("utf-8"), headers=headers
                )
        except httpx.HTTPError as exc:
            record_pipeline_dispatch(pipeline, "error")
            logger.exception("Pipeline dispatch failed", extra={"pipeline": pipeline})
            raise PipelineError(pipeline, str(exc)) from exc

        if not response.is_success:
            record_pipeline_dispatch(pipeline, "rejected")
            logger.error(
                "Pipeline rejected dispatch",
                extra={"pipeline": pipeline, "status_code": response.status_code},
            )
            raise PipelineError(pipeline, response.text, status_code=response.status_code)

        record_pipeline_dispatch(pipeline, "accepted")
        return _json_or_empty(response)


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    if not response.content:
        return {}
    try:
        data: Optional[Any] = response.json()
    except ValueError:
        return {"raw": response.text}
    return data if isinstance(data, dict) else {"result": data}


__all__ = [
    "ADDITIONAL_SOURCES",
    "AUDIO_GENERATION",
    "CHAT",
    "DOCUMENT_PROCESSING",
    "PODCAST_FEED",
    "PipelineClient",
]
