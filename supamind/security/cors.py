"""Origin allow-listing and CORS headers for browser-facing functions."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from supamind.config import DEFAULT_ALLOWED_ORIGINS
from supamind.metrics import record_origin_rejection
from supamind.responses import origin_not_allowed_response

_LOGGER = logging.getLogger("supamind.security.cors")

EXTENSION_ORIGIN_PATTERN = re.compile(r"^chrome-extension://[a-z]{32}$")

_BASE_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE",
    "Access-Control-Max-Age": "86400",
}


def is_origin_allowed(
    origin: Optional[str],
    allowed_origins: Iterable[str] = DEFAULT_ALLOWED_ORIGINS,
    *,
    allow_extensions: bool = True,
) -> bool:
    if not origin:
        return False
    if origin in tuple(allowed_origins):
        return True
    return allow_extensions and EXTENSION_ORIGIN_PATTERN.match(origin) is not None


def get_cors_headers(
    origin: Optional[str],
    allowed_origins: Iterable[str] = DEFAULT_ALLOWED_ORIGINS,
    *,
    allow_extensions: bool = True,
    allow_credentials: bool = True,
) -> Dict[str, str]:
    """Return CORS headers, echoing ``origin`` only when it is allowed."""

    headers = dict(_BASE_HEADERS)
    if origin and is_origin_allowed(origin, allowed_origins, allow_extensions=allow_extensions):
        headers["Access-Control-Allow-Origin"] = origin
        if allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
    return headers


class OriginGuardMiddleware(BaseHTTPMiddleware):
    """Answer preflights and reject disallowed origins before any handler runs."""

    def __init__(
        self,
        app,
        *,
        allowed_origins: Iterable[str] | None = None,
        allow_extensions: bool = True,
    ) -> None:
        super().__init__(app)
        self._allowed_origins: Tuple[str, ...] = tuple(
            DEFAULT_ALLOWED_ORIGINS if allowed_origins is None else allowed_origins
        )
        self._allow_extensions = allow_extensions

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        origin = request.headers.get("origin")
        cors_headers = get_cors_headers(
            origin, self._allowed_origins, allow_extensions=self._allow_extensions
        )

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors_headers)

        if origin and not self._is_allowed(origin):
            record_origin_rejection()
            _LOGGER.warning("Rejected request from disallowed origin", extra={"origin": origin, "path": request.url.path})
            return origin_not_allowed_response()

        response = await call_next(request)
        if origin:
            for name, value in cors_headers.items():
                response.headers.setdefault(name, value)
        return response

    def _is_allowed(self, origin: str) -> bool:
        return is_origin_allowed(origin, self._allowed_origins, allow_extensions=self._allow_extensions)


__all__ = [
    "EXTENSION_ORIGIN_PATTERN",
    "OriginGuardMiddleware",
    "get_cors_headers",
    "is_origin_allowed",
]
