"""Tiered sliding-window rate limiting for function endpoints.

Each endpoint declares a cost tier. A check records the request against the
``(tier, identifier)`` counter in the shared store and evaluates it in the
same atomic step, so callers must check exactly once per logical request.

Store outages fail open: :func:`fail_open` turns a store error into "no
decision", which :meth:`RateLimitService.check_rate_limit` treats as allowed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from supamind.errors import CounterStoreError
from supamind.infra.counter_store import CounterStore, create_counter_store
from supamind.metrics import record_rate_limit_check
from supamind.responses import iso_from_epoch_ms, rate_limit_exceeded_response

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from supamind.config import Settings

logger = logging.getLogger(__name__)

_CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "x-client-ip",
)

UNKNOWN_IDENTIFIER = "unknown"


class RateLimitTier(str, Enum):
    """Cost tiers declared by each endpoint."""

    HIGH_COST = "highCost"
    MEDIUM_COST = "mediumCost"
    LOW_COST = "lowCost"
    CALLBACK = "callback"


@dataclass(frozen=True)
class TierPolicy:
    limit: int
    window_seconds: int
    prefix: str

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


TIER_POLICIES: Mapping[RateLimitTier, TierPolicy] = {
    # LLM and text-to-speech calls
    RateLimitTier.HIGH_COST: TierPolicy(limit=20, window_seconds=3600, prefix="rl:high"),
    # document and feed ingestion
    RateLimitTier.MEDIUM_COST: TierPolicy(limit=50, window_seconds=3600, prefix="rl:med"),
    RateLimitTier.LOW_COST: TierPolicy(limit=100, window_seconds=3600, prefix="rl:low"),
    # server-to-server callbacks
    RateLimitTier.CALLBACK: TierPolicy(limit=500, window_seconds=3600, prefix="rl:cb"),
}


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single quota check."""

    allowed: bool
    limit: int
    remaining: int
    reset: int


@dataclass(frozen=True)
class LimitCheck:
    """Either a decision from the store or the error that prevented one."""

    tier: RateLimitTier
    identifier: str
    decision: Optional[RateLimitDecision] = None
    error: Optional[CounterStoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def fail_open(check: LimitCheck) -> Optional[RateLimitDecision]:
    """Return the decision to enforce, or ``None`` when the store could not answer."""

    if check.ok:
        return check.decision
    logger.error(
        "Rate limit check failed; allowing request",
        extra={"tier": check.tier.value, "error": str(check.error)},
    )
    record_rate_limit_check(check.tier.value, "store_error")
    return None


def get_client_ip(request: Request) -> str:
    """Best-effort client address taken from proxy headers."""

    for header in _CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return UNKNOWN_IDENTIFIER


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class TierLimiter:
    """Sliding-window limiter for one tier, namespaced by the tier prefix."""

    def __init__(
        self,
        tier: RateLimitTier,
        policy: TierPolicy,
        store: CounterStore,
        *,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self.tier = tier
        self.policy = policy
        self._store = store
        self._clock = clock

    async def limit(self, identifier: str) -> LimitCheck:
        """Record one request for ``identifier`` and evaluate it against the ceiling."""

        try:
            result = await self._store.sliding_window(
                f"{self.policy.prefix}:{identifier}",
                limit=self.policy.limit,
                window_ms=self.policy.window_ms,
                now_ms=self._clock(),
            )
        except CounterStoreError as exc:
            return LimitCheck(tier=self.tier, identifier=identifier, error=exc)
        decision = RateLimitDecision(
            allowed=result.success,
            limit=result.limit,
            remaining=result.remaining,
            reset=result.reset,
        )
        return LimitCheck(tier=self.tier, identifier=identifier, decision=decision)


class RateLimitService:
    """Holds the shared counter store and one limiter per tier.

    Build it once when the application starts and share it between requests.
    """

    def __init__(
        self,
        store: CounterStore,
        *,
        policies: Mapping[RateLimitTier, TierPolicy] = TIER_POLICIES,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._store = store
        self._clock = clock
        self._limiters: Dict[RateLimitTier, TierLimiter] = {
            tier: TierLimiter(tier, policy, store, clock=clock) for tier, policy in policies.items()
        }

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RateLimitService":
        return cls(create_counter_store(settings))

    def limiter(self, tier: RateLimitTier) -> TierLimiter:
        return self._limiters[tier]

    async def check_rate_limit(
        self,
        request: Request,
        tier: RateLimitTier,
        identifier: Optional[str] = None,
        bypass: bool = False,
    ) -> Optional[JSONResponse]:
        """Return a 429 response when over quota, otherwise ``None``."""

        if bypass:
            logger.info(
                "Rate limit bypassed",
                extra={"tier": tier.value, "identifier": identifier or "system"},
            )
            record_rate_limit_check(tier.value, "bypassed")
            return None

        key = identifier or get_client_ip(request)
        label = f"user:{identifier}" if identifier else f"ip:{key}"

        decision = fail_open(await self.limiter(tier).limit(key))
        if decision is None:
            return None

        logger.info(
            "Rate limit check",
            extra={
                "tier": tier.value,
                "identifier": label,
                "success": decision.allowed,
                "remaining": decision.remaining,
                "limit": decision.limit,
            },
        )
        if decision.allowed:
            record_rate_limit_check(tier.value, "allowed")
            return None

        logger.warning(
            "Rate limit exceeded",
            extra={
                "tier": tier.value,
                "identifier": label,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "reset": iso_from_epoch_ms(decision.reset),
            },
        )
        record_rate_limit_check(tier.value, "exceeded")
        return rate_limit_exceeded_response(decision, request.headers.get("origin"), self._clock())

    async def close(self) -> None:
        await self._store.close()


__all__ = [
    "LimitCheck",
    "RateLimitDecision",
    "RateLimitService",
    "RateLimitTier",
    "TIER_POLICIES",
    "TierLimiter",
    "TierPolicy",
    "fail_open",
    "get_client_ip",
]
