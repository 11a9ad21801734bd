"""Shared JSON response builders for function error paths."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from supamind.security.rate_limit import RateLimitDecision


def iso_from_epoch_ms(epoch_ms: int) -> str:
    """Render an epoch-millisecond timestamp as ISO-8601 UTC with a ``Z`` suffix."""

    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def retry_after_seconds(reset_ms: int, now_ms: int) -> int:
    """Whole seconds until ``reset_ms``, rounded up and never negative."""

    return max(0, math.ceil((reset_ms - now_ms) / 1000))


def json_error(status_code: int, error: str, headers: Optional[Dict[str, str]] = None, **extra: Any) -> JSONResponse:
    """Return a JSON error body of the shape ``{"error": ..., **extra}``."""

    return JSONResponse(status_code=status_code, content={"error": error, **extra}, headers=headers)


def missing_signature_response() -> JSONResponse:
    return json_error(status.HTTP_401_UNAUTHORIZED, "Missing webhook signature")


def invalid_signature_response() -> JSONResponse:
    return json_error(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")


def origin_not_allowed_response() -> JSONResponse:
    return json_error(status.HTTP_403_FORBIDDEN, "Origin not allowed")


def rate_limit_exceeded_response(
    decision: "RateLimitDecision",
    origin: Optional[str],
    now_ms: int,
) -> JSONResponse:
    """Build the 429 response carrying machine-readable retry metadata."""

    retry_after = retry_after_seconds(decision.reset, now_ms)
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset),
        "Retry-After": str(retry_after),
    }
    if origin:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"

    body = {
        "error": "Rate limit exceeded",
        "message": f"Too many requests. Please try again in {retry_after} seconds.",
        "limit": decision.limit,
        "remaining": decision.remaining,
        "reset": iso_from_epoch_ms(decision.reset),
        "retryAfter": retry_after,
    }
    return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=body, headers=headers)
