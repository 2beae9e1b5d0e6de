"""
Signal engine - owns the clusterer, correlation detector, signal deduplicator
and baseline service, and runs them as one refresh cycle.

A cycle is cluster -> correlate (with dedupe) -> emit. Cycles never overlap: a
cycle requested while another is running is dropped. The CPU-bound steps run in
a worker thread so the event loop stays responsive.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, TypeVar

from loguru import logger
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from signalwatch.analysis.clustering import EventClusterer
from signalwatch.analysis.config import DEFAULT_CONFIG, AnalysisConfig
from signalwatch.analysis.correlation import CorrelationDetector
from signalwatch.analysis.types import (
    ClusteredEvent,
    CorrelationSignal,
    MarketQuote,
    PredictionMarket,
    RawItem,
    SourceType,
)
from signalwatch.baseline.service import BaselineService
from signalwatch.baseline.types import AnomalyQueryResult, BaselineUpdate
from signalwatch.services.cache import MemoryStore
from signalwatch.services.deduplicator import SignalDeduplicator
from signalwatch.services.errors import BaselineValidationError
from signalwatch.services.store import KeyValueStore
from signalwatch.settings import global_settings

M = TypeVar("M", bound=BaseModel)

RECENT_SIGNAL_WINDOW = timedelta(minutes=30)


class CycleResult(BaseModel):
    """Output of one refresh cycle."""

    events: list[ClusteredEvent] = Field(default_factory=list)
    signals: list[CorrelationSignal] = Field(default_factory=list)
    skipped_items: int = 0
    started_at: datetime
    duration_seconds: float = 0.0


class CountEvaluation(BaseModel):
    """Anomaly verdict for one ingested count, taken before it joins the baseline."""

    type: str
    region: str
    count: float
    result: AnomalyQueryResult


class IngestResult(BaseModel):
    """Outcome of ingesting a list of activity counts."""

    evaluations: list[CountEvaluation] = Field(default_factory=list)
    updated: int = 0
    skipped: int = 0


def coerce_models(entries: Iterable[Any], model: type[M], label: str) -> tuple[list[M], int]:
    """Validate entries into ``model``, skipping (and counting) malformed ones."""
    parsed: list[M] = []
    skipped = 0
    for entry in entries or []:
        if isinstance(entry, model):
            parsed.append(entry)
            continue
        try:
            parsed.append(model.model_validate(entry))
        except PydanticValidationError as e:
            skipped += 1
            logger.warning(f"[Engine] Skipping malformed {label}: {e.error_count()} errors")
    return parsed, skipped


class SignalEngine:
    """
    Long-lived engine instance; construct once and feed it every refresh tick.

    Usage:
        engine = SignalEngine(store=MemoryStore())
        result = await engine.run_cycle(items, predictions, markets)
        if result:
            alert(result.signals)
    """

    def __init__(
        self,
        config: AnalysisConfig = DEFAULT_CONFIG,
        store: KeyValueStore | None = None,
        baseline: BaselineService | None = None,
        source_type_of: Callable[[str], SourceType] | None = None,
        clock: Callable[[], datetime] | None = None,
        dedupe_window: timedelta | None = None,
        dedupe_type_windows: dict[str, timedelta] | None = None,
        history_size: int | None = None,
    ):
        self.config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.clusterer = EventClusterer(config)
        self.deduplicator = SignalDeduplicator(
            window=dedupe_window
            or timedelta(minutes=global_settings.signal_dedupe_minutes),
            type_windows=dedupe_type_windows,
            clock=self._clock,
        )
        self.detector = CorrelationDetector(
            config,
            source_type_of=source_type_of,
            deduplicator=self.deduplicator,
            clock=self._clock,
        )
        self.baseline = baseline or BaselineService(
            store if store is not None else MemoryStore(), clock=self._clock
        )
        self._history: list[CorrelationSignal] = []
        self._history_size = history_size or global_settings.signal_history_size
        self._cycle_lock = asyncio.Lock()
        self._cycles = 0

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def cycle_count(self) -> int:
        return self._cycles

    # ── Correlation cycle ─────────────────────────────────────────────────────

    async def run_cycle(
        self,
        items: Iterable[Any],
        predictions: Iterable[Any] = (),
        markets: Iterable[Any] = (),
    ) -> CycleResult | None:
        """
        Run one cluster -> correlate cycle.

        Returns:
            CycleResult, or None when a previous cycle is still running
        """
        if self._cycle_lock.locked():
            logger.warning("[Engine] Previous cycle still running, dropping this one")
            return None

        async with self._cycle_lock:
            started_at = self._clock()
            start_time = time.time()

            raw_items, skipped = coerce_models(items, RawItem, "item")
            preds, _ = coerce_models(predictions, PredictionMarket, "prediction")
            quotes, _ = coerce_models(markets, MarketQuote, "market quote")

            events = await asyncio.to_thread(self.clusterer.cluster, raw_items)
            signals = await asyncio.to_thread(self.detector.detect, events, preds, quotes)
            self.add_to_history(signals)
            self._cycles += 1

            elapsed = time.time() - start_time
            logger.info(
                f"[Engine] Cycle {self._cycles}: {len(raw_items)} items, "
                f"{len(events)} events, {len(signals)} signals in {elapsed:.2f}s"
            )
            return CycleResult(
                events=events,
                signals=signals,
                skipped_items=skipped,
                started_at=started_at,
                duration_seconds=elapsed,
            )

    def add_to_history(self, signals: list[CorrelationSignal]) -> None:
        self._history.extend(signals)
        if len(self._history) > self._history_size:
            del self._history[: len(self._history) - self._history_size]

    def get_recent_signals(
        self, window: timedelta = RECENT_SIGNAL_WINDOW
    ) -> list[CorrelationSignal]:
        """Signals emitted within ``window`` of now, oldest first."""
        cutoff = self._clock() - window
        return [s for s in self._history if s.timestamp > cutoff]

    def reset(self) -> None:
        """Drop the detector snapshot, suppressed keys and signal history."""
        self.detector.reset()
        self._history.clear()
        logger.info("[Engine] State reset")

    # ── Activity counts ───────────────────────────────────────────────────────

    async def ingest_counts(self, updates: Iterable[Any]) -> IngestResult:
        """
        Evaluate each count against its baseline, then fold it in.

        Malformed entries are skipped individually. Updates are written in
        batches of the baseline service's maximum size.
        """
        result = IngestResult()
        valid: list[BaselineUpdate] = []

        parsed, result.skipped = coerce_models(updates, BaselineUpdate, "count")
        for update in parsed:
            region = update.region or "global"
            try:
                verdict = await self.baseline.evaluate_anomaly(
                    update.type, region, update.count
                )
            except BaselineValidationError as e:
                result.skipped += 1
                logger.warning(f"[Engine] Skipping count: {e}")
                continue

            result.evaluations.append(
                CountEvaluation(
                    type=update.type, region=region, count=update.count, result=verdict
                )
            )
            valid.append(update)

        size = self.baseline.max_batch
        for start in range(0, len(valid), size):
            batch = await self.baseline.batch_update(valid[start : start + size])
            result.updated += batch.updated

        return result
