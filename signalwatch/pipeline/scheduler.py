"""
Refresh-cycle scheduler
使用APScheduler定期驱动 SignalEngine
"""

from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from pydantic import BaseModel, Field

from signalwatch.analysis.types import CorrelationSignal
from signalwatch.pipeline.engine import CycleResult, SignalEngine
from signalwatch.settings import global_settings


class CycleInputs(BaseModel):
    """Everything upstream collaborators supply for one refresh tick."""

    items: list[Any] = Field(default_factory=list)
    predictions: list[Any] = Field(default_factory=list)
    markets: list[Any] = Field(default_factory=list)
    counts: list[Any] = Field(default_factory=list)


InputProvider = Callable[[], Awaitable[CycleInputs]]
SignalHandler = Callable[[list[CorrelationSignal]], Awaitable[None]]


class CycleScheduler:
    """Runs the engine on a fixed interval, one cycle at a time."""

    def __init__(
        self,
        engine: SignalEngine,
        provider: InputProvider,
        on_signals: SignalHandler | None = None,
        interval_seconds: int | None = None,
    ):
        self.scheduler = AsyncIOScheduler()
        self.engine = engine
        self.provider = provider
        self.on_signals = on_signals
        self.interval_seconds = interval_seconds or global_settings.cycle_interval_seconds
        self._is_running = False

    async def cycle_job(self) -> CycleResult | None:
        """One scheduled tick: fetch inputs, run the cycle, hand off signals."""
        try:
            inputs = await self.provider()
        except Exception as e:
            logger.error(f"[Scheduler] Input provider failed: {e}")
            return None

        result = await self.engine.run_cycle(
            inputs.items, inputs.predictions, inputs.markets
        )

        if inputs.counts:
            ingest = await self.engine.ingest_counts(inputs.counts)
            anomalies = [e for e in ingest.evaluations if e.result.anomaly]
            logger.info(
                f"[Scheduler] Baselines: {ingest.updated} updated, "
                f"{len(anomalies)} anomalies"
            )

        if result and result.signals and self.on_signals:
            try:
                await self.on_signals(result.signals)
            except Exception as e:
                logger.error(f"[Scheduler] Signal handler failed: {e}")

        return result

    def start(self) -> None:
        """启动调度器"""
        if self._is_running:
            logger.warning("Cycle scheduler is already running")
            return

        self.scheduler.add_job(
            self.cycle_job,
            trigger="interval",
            seconds=self.interval_seconds,
            id="signal_cycle_job",
            name="Signal Correlation Cycle",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        self.scheduler.start()
        self._is_running = True

        logger.info(
            f"Cycle scheduler started: running every {self.interval_seconds} seconds"
        )

    def stop(self) -> None:
        """停止调度器"""
        if not self._is_running:
            logger.warning("Cycle scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Cycle scheduler stopped")

    def is_running(self) -> bool:
        """检查调度器是否运行中"""
        return self._is_running

    async def run_now(self) -> CycleResult | None:
        """立即执行一次（手动触发）"""
        logger.info("Manual cycle triggered")
        return await self.cycle_job()
