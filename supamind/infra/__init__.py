"""Infrastructure utilities for the function layer."""

from .counter_store import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
    WindowResult,
    create_counter_store,
)
from .processing_store import (
    InMemoryProcessingStore,
    ProcessingStore,
    RedisProcessingStore,
    create_processing_store,
)

__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "InMemoryProcessingStore",
    "ProcessingStore",
    "RedisCounterStore",
    "RedisProcessingStore",
    "WindowResult",
    "create_counter_store",
    "create_processing_store",
]
