"""
Key/value store protocol and the resilience wrapper used by the baseline service.

A store failure never propagates to callers of ``ResilientStore``: reads turn
into misses and writes into ``False``, so the engine keeps running in a
degraded (learning / non-persisted) mode.

Read-modify-write callers use ``get_checked`` / ``mget_checked`` instead, which
raise StoreError so a failed read is never mistaken for an absent key.
"""

import asyncio
from typing import Any, Awaitable, Callable, Protocol, TypeVar, runtime_checkable

from loguru import logger

from signalwatch.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from signalwatch.services.errors import CircuitOpenError, StoreError, StoreTimeoutError

T = TypeVar("T")


@runtime_checkable
class KeyValueStore(Protocol):
    """Persistence abstraction consumed by the engine."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool: ...

    async def mget(self, keys: list[str]) -> list[Any | None]: ...


class ResilientStore:
    """
    Wraps a KeyValueStore with a per-call timeout and a circuit breaker.

    Usage:
        store = ResilientStore(MemoryStore(), timeout=2.0)
        record = await store.get("baseline:news:global:1:6")  # None on failure
    """

    def __init__(
        self,
        inner: KeyValueStore,
        timeout: float = 5.0,
        service_id: str | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
    ):
        self.inner = inner
        self.timeout = timeout
        self.service_id = service_id or getattr(inner, "service_id", "store")
        self.breaker = CircuitBreaker(self.service_id, breaker_config)

    async def get(self, key: str) -> Any | None:
        try:
            return await self.get_checked(key)
        except StoreError:
            return None

    async def mget(self, keys: list[str]) -> list[Any | None]:
        try:
            return await self.mget_checked(keys)
        except StoreError:
            return [None] * len(keys)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        try:
            result = await self._call(
                lambda: self.inner.set(key, value, ttl_seconds), f"set {key}"
            )
        except StoreError:
            return False
        return bool(result)

    async def get_checked(self, key: str) -> Any | None:
        """Like ``get``, but a failed read raises StoreError instead of reading as a miss."""
        return await self._call(lambda: self.inner.get(key), f"get {key}")

    async def mget_checked(self, keys: list[str]) -> list[Any | None]:
        """Like ``mget``, but a failed read raises StoreError."""
        if not keys:
            return []
        result = await self._call(lambda: self.inner.mget(keys), f"mget x{len(keys)}")
        if not isinstance(result, list) or len(result) != len(keys):
            raise StoreError(
                f"mget on '{self.service_id}' returned a malformed result",
                service_id=self.service_id,
            )
        return result

    async def _call(self, request_fn: Callable[[], Awaitable[T]], op: str) -> T:
        if not self.breaker.can_request():
            error = CircuitOpenError(
                self.service_id, self.breaker.get_time_until_reset() or 0.0
            )
            logger.warning(f"[Store] {op} skipped: {error}")
            raise error

        try:
            result = await asyncio.wait_for(request_fn(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.breaker.record_failure()
            error = StoreTimeoutError(self.service_id, self.timeout)
            logger.warning(f"[Store] {op}: {error}")
            raise error from None
        except Exception as e:
            self.breaker.record_failure()
            logger.error(f"[Store] {op} failed on '{self.service_id}': {e}")
            raise StoreError(str(e), service_id=self.service_id) from e

        self.breaker.record_success()
        return result
