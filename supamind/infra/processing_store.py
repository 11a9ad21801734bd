"""Stores tracking the processing status of sources and audio overviews."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


ProcessingRecord = Dict[str, Any]


class ProcessingStore(Protocol):
    """Persistence interface for work handed to automation pipelines."""

    async def get(self, record_id: str) -> Optional[ProcessingRecord]:
        """Return the stored record for ``record_id`` if present."""

    async def create(self, record_id: str, kind: str, fields: Mapping[str, Any]) -> ProcessingRecord:
        """Persist a new record, replacing any previous one with the same id."""

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> ProcessingRecord:
        """Merge ``fields`` into an existing record; raise ``KeyError`` when unknown."""

    async def close(self) -> None:  # pragma: no cover - interface default
        """Release any resources held by the store."""


def _new_record(record_id: str, kind: str, fields: Mapping[str, Any]) -> ProcessingRecord:
    return {"id": record_id, "kind": kind, **dict(fields)}


class InMemoryProcessingStore(ProcessingStore):
    """Processing store that keeps records within the process memory."""

    def __init__(self) -> None:
        self._records: Dict[str, ProcessingRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, record_id: str) -> Optional[ProcessingRecord]:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            return json.loads(json.dumps(record, default=_json_default))

    async def create(self, record_id: str, kind: str, fields: Mapping[str, Any]) -> ProcessingRecord:
        async with self._lock:
            record = _new_record(record_id, kind, fields)
            self._records[record_id] = record
            return dict(record)

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> ProcessingRecord:
        async with self._lock:
            if record_id not in self._records:
                raise KeyError(f"Record '{record_id}' not found")
            self._records[record_id].update(fields)
            return dict(self._records[record_id])

    async def close(self) -> None:  # pragma: no cover - nothing to release
        return None


class RedisProcessingStore(ProcessingStore):
    """Processing store backed by Redis for resilience across restarts."""

    def __init__(self, client: "Redis", key_prefix: str = "processing") -> None:
        self._redis = client
        self._key_prefix = key_prefix

    async def get(self, record_id: str) -> Optional[ProcessingRecord]:
        raw = await self._redis.get(self._key(record_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):  # pragma: no cover - depends on redis config
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def create(self, record_id: str, kind: str, fields: Mapping[str, Any]) -> ProcessingRecord:
        record = _new_record(record_id, kind, fields)
        await self._redis.set(self._key(record_id), json.dumps(record, default=_json_default))
        return record

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> ProcessingRecord:
        record = await self.get(record_id)
        if record is None:
            raise KeyError(f"Record '{record_id}' not found")
        record.update(fields)
        await self._redis.set(self._key(record_id), json.dumps(record, default=_json_default))
        return record

    async def close(self) -> None:
        await self._redis.aclose()

    def _key(self, record_id: str) -> str:
        return f"{self._key_prefix}:{record_id}"


def create_processing_store(redis_url: str | None) -> ProcessingStore:
    """Create the appropriate processing store given the runtime configuration."""

    if redis_url:
        import redis.asyncio as redis

        client = redis.from_url(redis_url, decode_responses=True)
        logger.info("Using RedisProcessingStore")
        return RedisProcessingStore(client)

    logger.info("Using in-memory processing store")
    return InMemoryProcessingStore()


def _json_default(value: Any) -> Any:
    """Gracefully serialise otherwise unsupported values."""

    return str(value)


__all__ = [
    "InMemoryProcessingStore",
    "ProcessingRecord",
    "ProcessingStore",
    "RedisProcessingStore",
    "create_processing_store",
]
