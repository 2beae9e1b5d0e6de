"""Integration tests for the signal engine and the cycle scheduler."""

import asyncio
from datetime import timedelta

import pytest

from conftest import make_item
from signalwatch.analysis.types import CorrelationSignal, SignalType
from signalwatch.baseline.types import Severity
from signalwatch.pipeline.engine import SignalEngine
from signalwatch.pipeline.scheduler import CycleInputs, CycleScheduler
from signalwatch.services.cache import MemoryStore

pytestmark = pytest.mark.integration


def _iran_story(now):
    return [
        make_item("Iran sanctions talks stall in Vienna", "Reuters", 180, now=now),
        make_item("Iran sanctions talks stall in Vienna, envoys", "BBC World", 170, now=now),
        make_item("Iran sanctions talks stall, Vienna says", "CNN World", 160, now=now),
    ]


def _background(now):
    return [
        make_item("Earthquake strikes off coast of Chile", "AP News", 150, now=now),
        make_item("Tech giant unveils chip", "The Verge", 140, now=now),
    ]


def _prediction(price):
    return {"title": "Iran sanctions lifted?", "yes_price": price, "volume": 125000}


@pytest.fixture
def engine(clock):
    return SignalEngine(store=MemoryStore(), clock=clock)


def _signal(clock, minutes_ago=0, signal_type=SignalType.VELOCITY_SPIKE):
    return CorrelationSignal(
        id=f"sig-{minutes_ago}",
        type=signal_type,
        title="News Velocity Spike",
        description="test",
        confidence=0.7,
        timestamp=clock.now - timedelta(minutes=minutes_ago),
    )


async def test_prediction_leads_news_end_to_end(engine, clock):
    first = await engine.run_cycle(
        _iran_story(clock.now) + _background(clock.now), [_prediction(40)], []
    )

    assert first.signals == []
    assert len(first.events) == 3
    iran = next(e for e in first.events if e.primary_title.startswith("Iran"))
    assert iran.source_count == 3
    assert iran.primary_source == "Reuters"

    clock.advance(minutes=1)
    second = await engine.run_cycle(_background(clock.now), [_prediction(48)], [])

    assert [s.type for s in second.signals] == [SignalType.PREDICTION_LEADS_NEWS]
    assert second.signals[0].confidence == pytest.approx(0.9)
    assert engine.get_recent_signals() == second.signals
    assert engine.cycle_count == 2

    clock.advance(minutes=1)
    third = await engine.run_cycle(_background(clock.now), [_prediction(48)], [])
    assert third.signals == []


async def test_malformed_inputs_are_skipped(engine, clock):
    result = await engine.run_cycle(
        [{"title": "no source or date"}, make_item("Chile earthquake", now=clock.now)],
        [{"title": "missing price"}],
        [{"name": "missing symbol"}],
    )

    assert result.skipped_items == 1
    assert len(result.events) == 1


async def test_overlapping_cycle_is_dropped(engine, clock):
    items = _iran_story(clock.now)
    results = await asyncio.gather(engine.run_cycle(items), engine.run_cycle(items))

    assert results[0] is not None
    assert results[1] is None
    assert engine.cycle_count == 1
    assert engine.is_running is False


async def test_reset_clears_snapshot_and_history(engine, clock):
    await engine.run_cycle([], [_prediction(40)])
    clock.advance(minutes=1)
    result = await engine.run_cycle([], [_prediction(48)])
    assert len(result.signals) == 1

    engine.reset()

    assert engine.get_recent_signals() == []
    assert engine.detector.previous_snapshot is None
    assert (await engine.run_cycle([], [_prediction(60)])).signals == []


def test_history_is_bounded(clock):
    engine = SignalEngine(clock=clock, history_size=2)
    engine.add_to_history([_signal(clock, 3), _signal(clock, 2), _signal(clock, 1)])
    assert [s.id for s in engine.get_recent_signals()] == ["sig-2", "sig-1"]


def test_recent_signals_window(clock):
    engine = SignalEngine(clock=clock)
    engine.add_to_history([_signal(clock, 45), _signal(clock, 10)])

    assert [s.id for s in engine.get_recent_signals()] == ["sig-10"]
    assert len(engine.get_recent_signals(timedelta(hours=1))) == 2


async def test_ingest_counts_evaluates_before_updating(engine):
    await engine.baseline.batch_update(
        [{"type": "military_flights", "count": v} for v in (8, 12) * 5]
    )

    result = await engine.ingest_counts(
        [
            {"type": "military_flights", "region": "global", "count": 20},
            {"type": "bogus", "count": 1},
            {"nope": 1},
        ]
    )

    assert result.updated == 1
    assert result.skipped == 2
    assert len(result.evaluations) == 1
    verdict = result.evaluations[0].result
    assert verdict.anomaly.severity == Severity.CRITICAL
    assert verdict.sample_count == 10

    record = await engine.baseline.get_record("military_flights")
    assert record.sample_count == 11


async def test_ingest_counts_splits_large_batches(engine):
    counts = [{"type": "vessels", "region": f"port{i % 4}", "count": i} for i in range(25)]
    result = await engine.ingest_counts(counts)

    assert result.updated == 25
    assert all(e.result.learning for e in result.evaluations)


async def test_scheduler_job_hands_off_signals(engine, clock):
    prices = iter([40, 48])
    received: list[list[CorrelationSignal]] = []

    async def provider():
        return CycleInputs(
            items=_background(clock()),
            predictions=[_prediction(next(prices))],
            counts=[{"type": "news", "count": 5}],
        )

    async def on_signals(signals):
        received.append(signals)

    scheduler = CycleScheduler(engine, provider, on_signals=on_signals, interval_seconds=3600)

    assert (await scheduler.run_now()).signals == []
    clock.advance(minutes=1)
    result = await scheduler.cycle_job()

    assert len(received) == 1
    assert received[0] == result.signals
    assert received[0][0].type == SignalType.PREDICTION_LEADS_NEWS
    assert (await engine.baseline.get_record("news")).sample_count == 2


async def test_scheduler_survives_provider_failure(engine):
    async def provider():
        raise RuntimeError("upstream unavailable")

    scheduler = CycleScheduler(engine, provider, interval_seconds=3600)
    assert await scheduler.cycle_job() is None
    assert engine.cycle_count == 0


async def test_scheduler_start_stop(engine):
    async def provider():
        return CycleInputs()

    scheduler = CycleScheduler(engine, provider, interval_seconds=3600)
    scheduler.start()
    try:
        assert scheduler.is_running() is True
        job = scheduler.scheduler.get_job("signal_cycle_job")
        assert job.max_instances == 1
        assert job.coalesce is True
    finally:
        scheduler.stop()
    assert scheduler.is_running() is False
