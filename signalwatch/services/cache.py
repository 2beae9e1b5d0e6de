"""
MemoryStore - In-process key/value store with per-key TTL.

Features:
- JSON-serialized values (callers never share mutable state with the store)
- TTL (Time To Live) per entry, expired lazily on read
- Capacity bound with oldest-first eviction
- Async-safe operations behind a single lock
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from loguru import logger


@dataclass
class StoreEntry:
    """A single stored value with metadata."""

    payload: str
    timestamp: datetime
    expires_at: datetime | None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if entry is past its TTL."""
        if self.expires_at is None:
            return False
        return (now or datetime.now()) >= self.expires_at


class MemoryStore:
    """
    Async key/value store implementing get / set / mget.

    Usage:
        store = MemoryStore(max_size=1000)

        value = await store.get("my_key")
        if value is None:
            await store.set("my_key", {"mean": 0}, ttl_seconds=300)
    """

    def __init__(
        self,
        max_size: int = 10000,
        debug: bool = False,
    ):
        self._memory: dict[str, StoreEntry] = {}
        self._max_size = max_size
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = StoreStats()

    @property
    def service_id(self) -> str:
        return "memory"

    async def get(self, key: str) -> Any | None:
        """Return the stored JSON value, or None when missing or expired."""
        async with self._lock:
            return self._read(key)

    async def mget(self, keys: list[str]) -> list[Any | None]:
        """Read several keys in one call; order matches ``keys``."""
        async with self._lock:
            return [self._read(key) for key in keys]

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """
        Store a JSON-serializable value.

        Args:
            key: Store key
            value: JSON-serializable value
            ttl_seconds: Time to live; None keeps the entry until evicted

        Returns:
            True when the value was written
        """
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"[MemoryStore] Refusing non-JSON value for {key}: {e}")
            return False

        now = datetime.now()
        expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds else None

        async with self._lock:
            # Re-inserting keeps dict order equal to write order
            self._memory.pop(key, None)
            while self._memory and len(self._memory) >= self._max_size:
                self._evict_oldest()

            self._memory[key] = StoreEntry(payload, now, expires_at)
            self._stats.writes += 1
        self._log(f"SET: {key[:50]} (ttl={ttl_seconds})")
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            removed = self._memory.pop(key, None) is not None
        if removed:
            self._log(f"DELETE: {key[:50]}")
        return removed

    async def clear(self) -> None:
        async with self._lock:
            dropped, self._memory = len(self._memory), {}
        self._log(f"CLEAR: dropped {dropped} keys")

    async def cleanup_expired(self) -> int:
        """Drop every expired entry; returns how many were dropped."""
        now = datetime.now()
        async with self._lock:
            live = {k: e for k, e in self._memory.items() if not e.is_expired(now)}
            dropped = len(self._memory) - len(live)
            self._memory = live
        if dropped:
            self._log(f"CLEANUP: dropped {dropped} expired keys")
        return dropped

    def _read(self, key: str) -> Any | None:
        entry = self._memory.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}...")
            return None

        if entry.is_expired():
            del self._memory[key]
            self._stats.misses += 1
            self._log(f"EXPIRED: {key[:50]}...")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}...")
        return json.loads(entry.payload)

    def _evict_oldest(self) -> None:
        oldest_key = next(iter(self._memory))
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}")

    def get_stats(self) -> "StoreStats":
        """Get store statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[MemoryStore] {message}")


@dataclass
class StoreStats:
    """Store statistics."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate read hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
