"""
Signalwatch主入口
组装存储、SignalEngine 与刷新周期调度器
"""

import asyncio

from loguru import logger

from signalwatch.api.baseline import serve_api
from signalwatch.datastore.engine import close_db, init_db
from signalwatch.datastore.repositories import SqlStore
from signalwatch.pipeline import CycleInputs, CycleScheduler, SignalEngine
from signalwatch.services.cache import MemoryStore
from signalwatch.settings import global_settings


async def empty_inputs() -> CycleInputs:
    """Placeholder provider until upstream fetchers are wired in."""
    return CycleInputs()


async def log_signals(signals) -> None:
    for signal in signals:
        logger.info(
            f"[Signal] {signal.type.value}: {signal.title} "
            f"(confidence {signal.confidence:.2f})"
        )


async def main() -> None:
    """主函数"""
    logger.info("Starting Signalwatch...")
    scheduler: CycleScheduler | None = None
    use_sql = global_settings.store_backend == "sql"

    try:
        if use_sql:
            logger.info("Initializing database...")
            session_factory = await init_db()
            store = SqlStore(session_factory)
            logger.info("Database initialized successfully")
        else:
            store = MemoryStore()

        engine = SignalEngine(store=store)
        scheduler = CycleScheduler(engine, empty_inputs, on_signals=log_signals)

        logger.info("Starting cycle scheduler...")
        scheduler.start()
        await scheduler.run_now()

        logger.info("Signalwatch is running. Press Ctrl+C to stop.")
        if global_settings.api_enabled:
            # uvicorn returns once it has handled the shutdown signal
            await serve_api(engine.baseline)
        else:
            while True:
                await asyncio.sleep(60)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        if scheduler and scheduler.is_running():
            logger.info("Stopping cycle scheduler...")
            scheduler.stop()

        if use_sql:
            logger.info("Closing database connections...")
            await close_db()

        logger.info("Signalwatch stopped")


if __name__ == "__main__":
    asyncio.run(main())
