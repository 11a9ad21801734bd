"""HMAC-SHA256 signing and verification for server-to-server callbacks."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

from supamind.config import DEFAULT_SIGNATURE_HEADER, WebhookSecurityMode
from supamind.errors import ConfigurationError
from supamind.metrics import record_webhook_verification
from supamind.responses import invalid_signature_response, missing_signature_response

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from supamind.config import Settings

logger = logging.getLogger(__name__)

DISABLED_WARNING = "WEBHOOK_SECRET not configured - callback authentication disabled"
OVERRIDDEN_WARNING = "WEBHOOK_SECURITY_MODE=disabled - callback authentication disabled"


def serialize_payload(payload: Any) -> str:
    """Serialise ``payload`` exactly as it is transmitted and signed."""

    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def generate_hmac_signature(payload: str, secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``payload`` keyed by ``secret``."""

    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def timing_safe_equal(a: str, b: str) -> bool:
    """Compare two strings without stopping at the first differing character.

    Strings of different length are rejected immediately; both sides are
    fixed-length hex digests in practice.
    """

    if len(a) != len(b):
        return False

    result = 0
    for left, right in zip(a, b):
        result |= ord(left) ^ ord(right)
    return result == 0


def verify_hmac_signature(payload: str, signature: str, secret: str) -> bool:
    """Return True when ``signature`` matches ``payload`` under ``secret``.

    Never raises: any error while computing the expected digest counts as a
    failed verification.
    """

    try:
        expected = generate_hmac_signature(payload, secret)
        return timing_safe_equal(signature, expected)
    except Exception:
        logger.exception("Error verifying HMAC signature")
        return False


async def validate_webhook_request(
    request: Request,
    secret: str,
    header_name: str = DEFAULT_SIGNATURE_HEADER,
) -> Optional[JSONResponse]:
    """Verify the signature header against the raw request body.

    Returns a 401 response when the header is missing or does not match, and
    ``None`` when the request is authentic. The body is read here, before any
    parsing; Starlette keeps it on the request so ``await request.body()``
    afterwards returns the same verified bytes.
    """

    signature = request.headers.get(header_name)
    if not signature:
        logger.error("Missing webhook signature", extra={"path": request.url.path})
        record_webhook_verification("missing_signature")
        return missing_signature_response()

    raw = await request.body()
    try:
        body = raw.decode("utf-8")
    except UnicodeDecodeError:
        body = None

    if body is None or not verify_hmac_signature(body, signature, secret):
        logger.error(
            "Invalid webhook signature",
            extra={"path": request.url.path, "signature_length": len(signature)},
        )
        record_webhook_verification("invalid_signature")
        return invalid_signature_response()

    record_webhook_verification("verified")
    return None


async def create_signed_webhook_request(
    url: str,
    payload: Any,
    secret: str,
    extra_headers: Optional[Mapping[str, str]] = None,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
    header_name: str = DEFAULT_SIGNATURE_HEADER,
) -> httpx.Response:
    """POST ``payload`` as JSON with its signature in ``header_name``.

    The body is serialised once and the same bytes are both signed and sent.
    """

    body = serialize_payload(payload)
    headers = {
        "Content-Type": "application/json",
        header_name: generate_hmac_signature(body, secret),
    }
    headers.update(extra_headers or {})

    content = body.encode("utf-8")
    if client is not None:
        return await client.post(url, content=content, headers=headers)
    async with httpx.AsyncClient(timeout=timeout) as owned_client:
        return await owned_client.post(url, content=content, headers=headers)


class WebhookAuthenticator:
    """Applies the configured security posture to inbound callbacks."""

    def __init__(
        self,
        secret: Optional[str],
        *,
        mode: Optional[WebhookSecurityMode] = None,
        header_name: str = DEFAULT_SIGNATURE_HEADER,
    ) -> None:
        if mode is None:
            mode = WebhookSecurityMode.ENFORCED if secret else WebhookSecurityMode.DISABLED
        if mode is WebhookSecurityMode.ENFORCED and not secret:
            raise ConfigurationError("Webhook verification is enforced but WEBHOOK_SECRET is not set")
        self.mode = mode
        self.header_name = header_name
        self._secret = secret or ""

    @classmethod
    def from_settings(cls, settings: "Settings") -> "WebhookAuthenticator":
        return cls(
            settings.webhook_secret,
            mode=settings.webhook_security_mode,
            header_name=settings.webhook_signature_header,
        )

    async def authenticate(self, request: Request) -> Optional[JSONResponse]:
        """Return a 401 response for unauthentic callbacks, otherwise ``None``."""

        if self.mode is WebhookSecurityMode.DISABLED:
            warning = OVERRIDDEN_WARNING if self._secret else DISABLED_WARNING
            logger.warning(warning, extra={"path": request.url.path})
            record_webhook_verification("unverified")
            return None
        return await validate_webhook_request(request, self._secret, self.header_name)


__all__ = [
    "DISABLED_WARNING",
    "OVERRIDDEN_WARNING",
    "WebhookAuthenticator",
    "WebhookSecurityMode",
    "create_signed_webhook_request",
    "generate_hmac_signature",
    "serialize_payload",
    "timing_safe_equal",
    "validate_webhook_request",
    "verify_hmac_signature",
]
