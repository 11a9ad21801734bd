"""Sliding-window counter stores backing the rate limiter."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional, Protocol, Tuple

from redis.exceptions import RedisError

from supamind.config import CounterStoreBackend
from supamind.errors import ConfigurationError, CounterStoreError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from redis.asyncio import Redis

    from supamind.config import Settings

logger = logging.getLogger(__name__)


# KEYS[1] current bucket, KEYS[2] previous bucket
# ARGV: limit, now_ms, window_ms, increment
# Returns the remaining quota after this request, or -1 when rejected.
_SLIDING_WINDOW_SCRIPT = """
local current = tonumber(redis.call("GET", KEYS[1]) or "0")
local previous = tonumber(redis.call("GET", KEYS[2]) or "0")
local limit = tonumber(ARGV[1])
local now = tonumber(ARGV[2])
local window = tonumber(ARGV[3])
local increment = tonumber(ARGV[4])

local elapsed = (now % window) / window
previous = math.floor((1 - elapsed) * previous)
if previous + current >= limit then
  return -1
end

local updated = redis.call("INCRBY", KEYS[1], increment)
if updated == increment then
  redis.call("PEXPIRE", KEYS[1], window * 2 + 1000)
end
return limit - (updated + previous)
"""


@dataclass(frozen=True)
class WindowResult:
    """Outcome of one record-and-evaluate call against a counter store."""

    success: bool
    limit: int
    remaining: int
    reset: int


class CounterStore(Protocol):
    """Atomic sliding-window counting primitive."""

    async def sliding_window(self, key: str, *, limit: int, window_ms: int, now_ms: int) -> WindowResult:
        """Record one request for ``key`` and report whether it fits in ``limit``."""

    async def close(self) -> None:  # pragma: no cover - interface default
        """Release any resources held by the store."""


def bucket_keys(key: str, now_ms: int, window_ms: int) -> Tuple[str, str, int]:
    """Return the current bucket key, previous bucket key and current bucket index."""

    current = now_ms // window_ms
    return f"{key}:{current}", f"{key}:{current - 1}", current


def weighted_previous(previous: int, now_ms: int, window_ms: int) -> int:
    """Portion of the previous bucket still covered by the trailing window."""

    elapsed = (now_ms % window_ms) / window_ms
    return math.floor((1 - elapsed) * previous)


def _result(remaining: int, *, limit: int, window_ms: int, bucket: int) -> WindowResult:
    return WindowResult(
        success=remaining >= 0,
        limit=limit,
        remaining=max(0, remaining),
        reset=(bucket + 1) * window_ms,
    )


class InMemoryCounterStore(CounterStore):
    """Counter store that keeps buckets in process memory.

    Expired buckets are dropped when their key is read and, at most once per
    ``sweep_interval_ms``, in a full pass over the map.
    """

    def __init__(self, sweep_interval_ms: int = 60_000) -> None:
        self._buckets: Dict[str, Tuple[int, int]] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval_ms = sweep_interval_ms
        self._next_sweep_ms = 0

    async def sliding_window(self, key: str, *, limit: int, window_ms: int, now_ms: int) -> WindowResult:
        current_key, previous_key, bucket = bucket_keys(key, now_ms, window_ms)
        async with self._lock:
            self._sweep(now_ms)
            current = self._read(current_key, now_ms)
            previous = weighted_previous(self._read(previous_key, now_ms), now_ms, window_ms)
            if previous + current >= limit:
                return _result(-1, limit=limit, window_ms=window_ms, bucket=bucket)

            updated = current + 1
            expires_at = self._buckets.get(current_key, (0, now_ms + window_ms * 2 + 1000))[1]
            self._buckets[current_key] = (updated, expires_at)
            return _result(limit - (updated + previous), limit=limit, window_ms=window_ms, bucket=bucket)

    async def close(self) -> None:  # pragma: no cover - nothing to release
        return None

    def _sweep(self, now_ms: int) -> None:
        if now_ms < self._next_sweep_ms:
            return
        self._next_sweep_ms = now_ms + self._sweep_interval_ms
        expired = [key for key, (_, expires_at) in self._buckets.items() if expires_at <= now_ms]
        for key in expired:
            del self._buckets[key]

    def _read(self, key: str, now_ms: int) -> int:
        entry = self._buckets.get(key)
        if entry is None:
            return 0
        count, expires_at = entry
        if expires_at <= now_ms:
            del self._buckets[key]
            return 0
        return count


class RedisCounterStore(CounterStore):
    """Counter store backed by Redis; each check runs as one atomic script."""

    def __init__(self, client: "Redis") -> None:
        self._redis = client
        self._script = client.register_script(_SLIDING_WINDOW_SCRIPT)

    async def sliding_window(self, key: str, *, limit: int, window_ms: int, now_ms: int) -> WindowResult:
        current_key, previous_key, bucket = bucket_keys(key, now_ms, window_ms)
        try:
            remaining = await self._script(keys=[current_key, previous_key], args=[limit, now_ms, window_ms, 1])
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreError(f"counter store unavailable: {exc}") from exc
        return _result(int(remaining), limit=limit, window_ms=window_ms, bucket=bucket)

    async def close(self) -> None:
        await self._redis.aclose()


def create_counter_store(settings: "Settings") -> CounterStore:
    """Create the counter store described by ``settings``.

    Raises :class:`ConfigurationError` when the Redis backend is selected but
    its URL or access token is missing.
    """

    if settings.rate_limit_store is CounterStoreBackend.MEMORY:
        logger.warning("Using in-memory rate limit counters; quotas are not shared across instances")
        return InMemoryCounterStore()

    url: Optional[str] = settings.rate_limit_store_url
    token: Optional[str] = settings.rate_limit_store_token
    if not url or not token:
        raise ConfigurationError(
            "Rate limit store credentials not configured. "
            "Set RATE_LIMIT_STORE_URL and RATE_LIMIT_STORE_TOKEN"
        )

    import redis.asyncio as redis

    client = redis.from_url(
        url,
        password=token,
        decode_responses=True,
        socket_timeout=settings.rate_limit_store_timeout,
        socket_connect_timeout=settings.rate_limit_store_timeout,
    )
    logger.info("Using RedisCounterStore", extra={"timeout": settings.rate_limit_store_timeout})
    return RedisCounterStore(client)


__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "WindowResult",
    "bucket_keys",
    "create_counter_store",
    "weighted_previous",
]
