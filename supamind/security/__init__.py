"""Request guards shared by every function endpoint."""

from .cors import OriginGuardMiddleware
from .rate_limit import RateLimitService, RateLimitTier
from .webhook import WebhookAuthenticator, WebhookSecurityMode

__all__ = [
    "OriginGuardMiddleware",
    "RateLimitService",
    "RateLimitTier",
    "WebhookAuthenticator",
    "WebhookSecurityMode",
]
