"""
Temporal baseline service - Welford accumulators keyed by
(type, region, weekday, month) and z-score anomaly evaluation.

Each key has its own asyncio lock so concurrent read-modify-write cycles on the
same key never lose an update. Lookups treat a failing store as a miss; an
update whose read fails writes nothing, so a store outage never overwrites a
baseline with a fresh one (see ResilientStore).
"""

import asyncio
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Iterable

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from signalwatch.baseline.types import (
    AnomalyQueryResult,
    AnomalyResult,
    BaselineRecord,
    BaselineStats,
    BaselineType,
    BaselineUpdate,
    BatchUpdateResult,
    Severity,
)
from signalwatch.services.errors import (
    BaselineValidationError,
    BatchTooLargeError,
    StoreError,
)
from signalwatch.services.store import KeyValueStore, ResilientStore
from signalwatch.settings import global_settings

Z_THRESHOLD_LOW = 1.5
Z_THRESHOLD_MEDIUM = 2.0
Z_THRESHOLD_HIGH = 3.0
ZERO_MEAN_MULTIPLIER = 999.0
DEFAULT_REGION = "global"


def make_key(baseline_type: str, region: str, weekday: int, month: int) -> str:
    return f"baseline:{baseline_type}:{region}:{weekday}:{month}"


def get_severity(z_score: float) -> Severity:
    if z_score >= Z_THRESHOLD_HIGH:
        return Severity.CRITICAL
    if z_score >= Z_THRESHOLD_MEDIUM:
        return Severity.HIGH
    if z_score >= Z_THRESHOLD_LOW:
        return Severity.MEDIUM
    return Severity.NORMAL


def calendar_slot(now: datetime) -> tuple[int, int]:
    """(weekday with Sunday=0, month 1-12) in UTC."""
    now = now.astimezone(timezone.utc) if now.tzinfo else now
    return (now.weekday() + 1) % 7, now.month


def _round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


class BaselineService:
    """
    Maintains and queries temporal baselines.

    Usage:
        service = BaselineService(MemoryStore())
        await service.update_baseline("military_flights", "global", 47)
        result = await service.evaluate_anomaly("military_flights", "global", 80)
        if result.learning:
            ...
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] | None = None,
        min_samples: int | None = None,
        ttl_seconds: int | None = None,
        max_batch: int | None = None,
        resilient: bool = True,
    ):
        if resilient and not isinstance(store, ResilientStore):
            store = ResilientStore(store, timeout=global_settings.store_timeout_seconds)
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.min_samples = min_samples or global_settings.baseline_min_samples
        self.ttl_seconds = ttl_seconds or global_settings.baseline_ttl_days * 86400
        self.max_batch = max_batch or global_settings.baseline_max_batch
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    # ── Keys and validation ───────────────────────────────────────────────────

    def key_for(self, baseline_type: str, region: str, now: datetime | None = None) -> str:
        weekday, month = calendar_slot(now or self._clock())
        return make_key(baseline_type, region, weekday, month)

    @asynccontextmanager
    async def _locked(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """
        Hold the locks of ``keys``, taken in sorted order.

        A key's lock lives only while some caller holds or waits on it, so
        the lock map stays as small as the set of keys in flight.
        """
        ordered = sorted(set(keys))
        locks = []
        for key in ordered:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = asyncio.Lock()
            self._lock_users[key] = self._lock_users.get(key, 0) + 1
            locks.append(lock)

        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._lock_users[key] -= 1
                if not self._lock_users[key]:
                    del self._lock_users[key]
                    del self._locks[key]

    async def _read_for_update(self, keys: list[str]) -> list[Any | None]:
        """Read keys for a read-modify-write; a failed read raises StoreError."""
        if isinstance(self.store, ResilientStore):
            return await self.store.mget_checked(keys)
        return await self.store.mget(keys)

    @staticmethod
    def parse_type(baseline_type: Any) -> BaselineType:
        try:
            return BaselineType(baseline_type)
        except ValueError:
            raise BaselineValidationError(
                f"Unknown baseline type: {baseline_type!r}"
            ) from None

    @classmethod
    def validate(cls, baseline_type: Any, count: Any) -> tuple[BaselineType, float]:
        """Reject unknown types and non-finite counts."""
        parsed_type = cls.parse_type(baseline_type)

        if isinstance(count, bool) or not isinstance(count, (int, float)):
            raise BaselineValidationError(f"Count must be a number, got {count!r}")
        if not math.isfinite(count):
            raise BaselineValidationError(f"Count must be finite, got {count!r}")

        return parsed_type, float(count)

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_record(
        self, baseline_type: str, region: str = DEFAULT_REGION
    ) -> BaselineRecord:
        """Current accumulator for this (type, region) and calendar slot."""
        parsed_type = self.parse_type(baseline_type)
        key = self.key_for(parsed_type.value, region)
        return BaselineRecord.from_store(await self.store.get(key))

    def evaluate_record(self, record: BaselineRecord, count: float) -> AnomalyQueryResult:
        """Anomaly verdict for ``count`` against an already-loaded record."""
        if record.sample_count < self.min_samples:
            return AnomalyQueryResult(
                anomaly=None,
                learning=True,
                sample_count=record.sample_count,
                samples_needed=self.min_samples,
            )

        std_dev = record.std_dev
        z_score = abs(count - record.mean) / std_dev if std_dev > 0 else 0.0

        if record.mean > 0:
            multiplier = _round2(count / record.mean)
        elif count > 0:
            multiplier = ZERO_MEAN_MULTIPLIER
        else:
            multiplier = 1.0

        anomaly = None
        if z_score >= Z_THRESHOLD_LOW:
            anomaly = AnomalyResult(
                z_score=_round2(z_score),
                severity=get_severity(z_score),
                multiplier=multiplier,
            )

        return AnomalyQueryResult(
            anomaly=anomaly,
            baseline=BaselineStats(
                mean=_round2(record.mean),
                std_dev=_round2(std_dev),
                sample_count=record.sample_count,
            ),
            learning=False,
            sample_count=record.sample_count,
        )

    async def evaluate_anomaly(
        self, baseline_type: str, region: str, count: float
    ) -> AnomalyQueryResult:
        """
        Compare a live count with its baseline.

        Returns a learning result while fewer than ``min_samples`` observations
        exist for the current calendar slot.
        """
        parsed_type, value = self.validate(baseline_type, count)
        region = region or DEFAULT_REGION
        key = self.key_for(parsed_type.value, region)

        record = BaselineRecord.from_store(await self.store.get(key))
        result = self.evaluate_record(record, value)

        if result.anomaly:
            logger.info(
                f"[Baseline] {parsed_type.value}/{region}: count={value} "
                f"z={result.anomaly.z_score} severity={result.anomaly.severity.value}"
            )
        return result

    # ── Writes ────────────────────────────────────────────────────────────────

    async def update_baseline(
        self, baseline_type: str, region: str, count: float
    ) -> BaselineRecord | None:
        """
        Fold one observation into the current slot's accumulator.

        Returns:
            The updated record, or None when the current record could not be
            read (nothing is written then)
        """
        parsed_type, value = self.validate(baseline_type, count)
        region = region or DEFAULT_REGION
        now = self._clock()
        key = self.key_for(parsed_type.value, region, now)

        async with self._locked([key]):
            try:
                (stored,) = await self._read_for_update([key])
            except StoreError as e:
                logger.warning(f"[Baseline] Skipping update for {key}, read failed: {e}")
                return None
            record = BaselineRecord.from_store(stored).updated(value, now)
            written = await self.store.set(key, record.to_store(), self.ttl_seconds)

        if not written:
            logger.warning(f"[Baseline] Update for {key} was not persisted")
        return record

    def _parse_entry(self, entry: Any) -> BaselineUpdate | None:
        if isinstance(entry, BaselineUpdate):
            update, raw_count = entry, entry.count
        else:
            try:
                update = BaselineUpdate.model_validate(entry)
            except PydanticValidationError:
                return None
            raw_count = entry.get("count")
        try:
            parsed_type, value = self.validate(update.type, raw_count)
        except BaselineValidationError:
            return None
        return BaselineUpdate(
            type=parsed_type.value, region=update.region or DEFAULT_REGION, count=value
        )

    async def batch_update(self, updates: list[Any]) -> BatchUpdateResult:
        """
        Apply up to ``max_batch`` observations with one multi-key read.

        Invalid entries are skipped individually. Entries sharing a key are
        folded in order. The batch is atomic per key, not as a whole.

        Raises:
            BatchTooLargeError: more than ``max_batch`` entries
        """
        if len(updates) > self.max_batch:
            raise BatchTooLargeError(len(updates), self.max_batch)

        now = self._clock()
        result = BatchUpdateResult()

        by_key: dict[str, list[float]] = {}
        for entry in updates:
            update = self._parse_entry(entry)
            if update is None:
                result.skipped += 1
                continue
            key = self.key_for(update.type, update.region, now)
            by_key.setdefault(key, []).append(update.count)

        if not by_key:
            return result

        keys = sorted(by_key)
        async with self._locked(keys):
            try:
                existing = await self._read_for_update(keys)
            except StoreError as e:
                result.failed += sum(len(values) for values in by_key.values())
                logger.warning(
                    f"[Baseline] Batch of {len(keys)} keys not applied, read failed: {e}"
                )
                return result

            records = {}
            for key, stored in zip(keys, existing):
                record = BaselineRecord.from_store(stored)
                for value in by_key[key]:
                    record = record.updated(value, now)
                records[key] = record

            written = await asyncio.gather(
                *(
                    self.store.set(key, record.to_store(), self.ttl_seconds)
                    for key, record in records.items()
                )
            )

        for key, ok in zip(records, written):
            if ok:
                result.updated += len(by_key[key])
                result.keys.append(key)
            else:
                result.failed += len(by_key[key])

        logger.info(
            f"[Baseline] Batch: {result.updated} updated, {result.skipped} skipped, "
            f"{result.failed} not persisted"
        )
        return result
