"""
Service layer infrastructure - storage and suppression primitives.

Provides:
- MemoryStore: In-process key/value store with TTL
- ResilientStore: Timeout + circuit breaker around any store
- CircuitBreaker: Stops calling a failing store for a while
- SignalDeduplicator: Cooldown-based suppression of repeated signals
"""

from signalwatch.services.errors import (
    ServiceError,
    StoreError,
    StoreTimeoutError,
    CircuitOpenError,
    BaselineValidationError,
    BatchTooLargeError,
)
from signalwatch.services.cache import MemoryStore, StoreEntry, StoreStats
from signalwatch.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from signalwatch.services.store import KeyValueStore, ResilientStore
from signalwatch.services.deduplicator import SignalDeduplicator, make_dedupe_key

__all__ = [
    # Errors
    "ServiceError",
    "StoreError",
    "StoreTimeoutError",
    "CircuitOpenError",
    "BaselineValidationError",
    "BatchTooLargeError",
    # Stores
    "MemoryStore",
    "StoreEntry",
    "StoreStats",
    "KeyValueStore",
    "ResilientStore",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Deduplicator
    "SignalDeduplicator",
    "make_dedupe_key",
]
