"""Unit tests for the in-memory store, circuit breaker and resilient wrapper."""

import asyncio
from datetime import timedelta

import pytest

from signalwatch.services.cache import MemoryStore
from signalwatch.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from signalwatch.services.errors import CircuitOpenError, StoreError, StoreTimeoutError
from signalwatch.services.store import KeyValueStore, ResilientStore

pytestmark = pytest.mark.unit


class FlakyStore:
    """Store that fails a set number of times before recovering."""

    service_id = "flaky"

    def __init__(self, failures: int = 0, delay: float = 0.0):
        self.failures = failures
        self.delay = delay
        self.calls = 0
        self.data: dict = {}

    async def _maybe_fail(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("boom")

    async def get(self, key):
        await self._maybe_fail()
        return self.data.get(key)

    async def mget(self, keys):
        await self._maybe_fail()
        return [self.data.get(k) for k in keys]

    async def set(self, key, value, ttl_seconds=None):
        await self._maybe_fail()
        self.data[key] = value
        return True


# ── MemoryStore ───────────────────────────────────────────────────────────────


async def test_memory_store_get_set(memory_store):
    assert await memory_store.get("missing") is None
    assert await memory_store.set("k", {"mean": 1.5}) is True
    assert await memory_store.get("k") == {"mean": 1.5}


async def test_memory_store_returns_copies(memory_store):
    value = {"mean": 1.0}
    await memory_store.set("k", value)
    value["mean"] = 99.0

    fetched = await memory_store.get("k")
    fetched["mean"] = 50.0
    assert await memory_store.get("k") == {"mean": 1.0}


async def test_memory_store_mget_preserves_order(memory_store):
    await memory_store.set("a", 1)
    await memory_store.set("c", 3)
    assert await memory_store.mget(["c", "b", "a"]) == [3, None, 1]


async def test_memory_store_rejects_non_json(memory_store):
    assert await memory_store.set("k", {"when": object()}) is False
    assert await memory_store.get("k") is None


async def test_memory_store_ttl_expiry():
    store = MemoryStore()
    await store.set("short", 1, ttl_seconds=1)
    await store.set("forever", 2)
    store._memory["short"].expires_at -= timedelta(seconds=5)

    assert await store.get("short") is None
    assert await store.get("forever") == 2


async def test_memory_store_cleanup_expired():
    store = MemoryStore()
    await store.set("a", 1, ttl_seconds=1)
    await store.set("b", 2, ttl_seconds=60)
    store._memory["a"].expires_at -= timedelta(seconds=5)

    assert await store.cleanup_expired() == 1
    assert await store.get("b") == 2


async def test_memory_store_evicts_oldest_at_capacity():
    store = MemoryStore(max_size=2)
    await store.set("first", 1)
    await store.set("second", 2)
    await store.set("third", 3)

    assert await store.get("first") is None
    assert await store.mget(["second", "third"]) == [2, 3]
    assert store.get_stats().evictions == 1


async def test_memory_store_delete_and_clear(memory_store):
    await memory_store.set("a", 1)
    await memory_store.set("b", 2)

    assert await memory_store.delete("a") is True
    assert await memory_store.delete("a") is False
    await memory_store.clear()
    assert await memory_store.get("b") is None


def test_stores_satisfy_protocol(memory_store):
    assert isinstance(memory_store, KeyValueStore)
    assert isinstance(FlakyStore(), KeyValueStore)


# ── CircuitBreaker ────────────────────────────────────────────────────────────


def test_breaker_opens_after_threshold():
    breaker = CircuitBreaker("test", CircuitBreakerConfig(failure_threshold=2))
    breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED
    breaker.record_failure()

    assert breaker.state == CircuitState.OPEN
    assert breaker.can_request() is False
    assert breaker.get_time_until_reset() > 0


def test_breaker_half_open_allows_one_trial_call():
    config = CircuitBreakerConfig(failure_threshold=1, reset_timeout=timedelta(0))
    breaker = CircuitBreaker("test", config)
    breaker.record_failure()

    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.can_request() is True
    assert breaker.can_request() is False

    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.get_status()["failure_count"] == 0


def test_success_resets_failure_count():
    breaker = CircuitBreaker("test", CircuitBreakerConfig(failure_threshold=2))
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED


# ── ResilientStore ────────────────────────────────────────────────────────────


async def test_resilient_store_passes_through():
    store = ResilientStore(MemoryStore())
    assert await store.set("k", {"v": 1}, ttl_seconds=60) is True
    assert await store.get("k") == {"v": 1}
    assert await store.mget(["k", "x"]) == [{"v": 1}, None]
    assert await store.mget([]) == []


async def test_resilient_store_failure_is_miss():
    store = ResilientStore(FlakyStore(failures=1))
    assert await store.get("k") is None
    assert await store.set("k", 1) is True
    assert await store.get("k") == 1


async def test_resilient_store_failed_write_is_false():
    store = ResilientStore(FlakyStore(failures=1))
    assert await store.set("k", 1) is False


async def test_resilient_store_timeout_is_miss():
    store = ResilientStore(FlakyStore(delay=0.5), timeout=0.01)
    assert await store.get("k") is None
    assert await store.mget(["a", "b"]) == [None, None]


async def test_resilient_store_open_circuit_skips_inner():
    inner = FlakyStore(failures=10)
    store = ResilientStore(inner, breaker_config=CircuitBreakerConfig(failure_threshold=2))

    await store.get("a")
    await store.get("b")
    assert store.breaker.state == CircuitState.OPEN

    assert await store.get("c") is None
    assert inner.calls == 2


async def test_resilient_store_bad_mget_shape_is_all_misses():
    class ShortStore(FlakyStore):
        async def mget(self, keys):
            return [1]

    store = ResilientStore(ShortStore())
    assert await store.mget(["a", "b"]) == [None, None]


async def test_checked_reads_raise_on_failure():
    store = ResilientStore(FlakyStore(failures=2))

    with pytest.raises(StoreError):
        await store.get_checked("k")
    with pytest.raises(StoreError):
        await store.mget_checked(["a", "b"])
    assert await store.get_checked("k") is None
    assert await store.mget_checked([]) == []


async def test_checked_read_timeout():
    store = ResilientStore(FlakyStore(delay=0.5), timeout=0.01)
    with pytest.raises(StoreTimeoutError):
        await store.get_checked("k")


async def test_checked_read_with_open_circuit():
    store = ResilientStore(
        FlakyStore(failures=5), breaker_config=CircuitBreakerConfig(failure_threshold=1)
    )
    await store.get("a")
    with pytest.raises(CircuitOpenError):
        await store.mget_checked(["a"])
