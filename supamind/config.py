"""Runtime configuration loaded from the process environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from supamind.errors import ConfigurationError

DEFAULT_ALLOWED_ORIGINS: Tuple[str, ...] = (
    "http://localhost:5173",
    "http://localhost:5174",
    "http://localhost:3000",
    "http://localhost:8080",
    "https://localhost:5173",
    "https://supamind.ai",
    "https://www.supamind.ai",
    "https://app.supamind.ai",
)

DEFAULT_SIGNATURE_HEADER = "x-webhook-signature"

_PIPELINE_ENV: Dict[str, str] = {
    "document_processing": "DOCUMENT_PROCESSING_WEBHOOK_URL",
    "chat": "NOTEBOOK_CHAT_URL",
    "audio_generation": "AUDIO_GENERATION_WEBHOOK_URL",
    "additional_sources": "ADDITIONAL_SOURCES_WEBHOOK_URL",
    "podcast_feed": "PODCAST_FEED_PROCESSING_WEBHOOK_URL",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class WebhookSecurityMode(str, Enum):
    """Security posture applied to inbound callback requests."""

    ENFORCED = "enforced"
    DISABLED = "disabled"


class CounterStoreBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"


def _parse_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _parse_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _optional(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    """Deployment settings for the function layer.

    Instances are immutable; build one with :meth:`from_env` at process start
    and hand it to :func:`supamind.main.create_app`.
    """

    rate_limit_store: CounterStoreBackend = CounterStoreBackend.REDIS
    rate_limit_store_url: Optional[str] = None
    rate_limit_store_token: Optional[str] = None
    rate_limit_store_timeout: float = 2.0
    webhook_secret: Optional[str] = None
    webhook_security_mode: Optional[WebhookSecurityMode] = None
    webhook_signature_header: str = DEFAULT_SIGNATURE_HEADER
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    allow_extension_origins: bool = True
    public_base_url: str = "http://localhost:8000"
    processing_store_url: Optional[str] = None
    pipeline_endpoints: Dict[str, str] = field(default_factory=dict)
    pipeline_auth_header: Optional[str] = None
    pipeline_timeout: float = 30.0

    def __post_init__(self) -> None:
        mode = self.webhook_security_mode
        if mode is None:
            mode = WebhookSecurityMode.ENFORCED if self.webhook_secret else WebhookSecurityMode.DISABLED
            object.__setattr__(self, "webhook_security_mode", mode)
        if mode is WebhookSecurityMode.ENFORCED and not self.webhook_secret:
            raise ConfigurationError("WEBHOOK_SECURITY_MODE=enforced requires WEBHOOK_SECRET")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        store_raw = env.get("RATE_LIMIT_STORE", CounterStoreBackend.REDIS.value).strip().lower()
        try:
            store = CounterStoreBackend(store_raw)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown RATE_LIMIT_STORE {store_raw!r}") from exc

        secret = _optional(env, "WEBHOOK_SECRET")
        mode_raw = _optional(env, "WEBHOOK_SECURITY_MODE")
        mode: Optional[WebhookSecurityMode] = None
        if mode_raw is not None:
            try:
                mode = WebhookSecurityMode(mode_raw.lower())
            except ValueError as exc:
                raise ConfigurationError(f"Unknown WEBHOOK_SECURITY_MODE {mode_raw!r}") from exc

        origins_raw = _optional(env, "CORS_ALLOWED_ORIGINS")
        if origins_raw is None:
            origins = DEFAULT_ALLOWED_ORIGINS
        else:
            origins = tuple(item.strip() for item in origins_raw.split(",") if item.strip())

        endpoints = {
            name: url
            for name, url in ((name, _optional(env, var)) for name, var in _PIPELINE_ENV.items())
            if url
        }

        return cls(
            rate_limit_store=store,
            rate_limit_store_url=_optional(env, "RATE_LIMIT_STORE_URL"),
            rate_limit_store_token=_optional(env, "RATE_LIMIT_STORE_TOKEN"),
            rate_limit_store_timeout=_parse_float(env, "RATE_LIMIT_STORE_TIMEOUT", 2.0),
            webhook_secret=secret,
            webhook_security_mode=mode,
            webhook_signature_header=(
                _optional(env, "WEBHOOK_SIGNATURE_HEADER") or DEFAULT_SIGNATURE_HEADER
            ).lower(),
            allowed_origins=origins,
            allow_extension_origins=_parse_bool(env, "CORS_ALLOW_EXTENSIONS", True),
            public_base_url=(_optional(env, "PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/"),
            processing_store_url=_optional(env, "PROCESSING_STORE_URL"),
            pipeline_endpoints=endpoints,
            pipeline_auth_header=_optional(env, "PIPELINE_AUTH_HEADER"),
            pipeline_timeout=_parse_float(env, "PIPELINE_TIMEOUT", 30.0),
        )

    def callback_url(self, function_name: str) -> str:
        """Return the public URL a pipeline should call back for ``function_name``."""

        return f"{self.public_base_url}/functions/v1/{function_name}"


__all__ = [
    "CounterStoreBackend",
    "DEFAULT_ALLOWED_ORIGINS",
    "DEFAULT_SIGNATURE_HEADER",
    "Settings",
    "WebhookSecurityMode",
]
