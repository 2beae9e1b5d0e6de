"""Integration tests for the SQL-backed key/value store."""

import pytest

from signalwatch.baseline.service import BaselineService
from signalwatch.datastore.engine import close_db, get_session_factory, init_db
from signalwatch.datastore.repositories import SqlStore

pytestmark = pytest.mark.integration


@pytest.fixture
async def sql_store(tmp_path):
    session_factory = await init_db(f"sqlite+aiosqlite:///{tmp_path / 'signals.db'}")
    yield SqlStore(session_factory)
    await close_db()


async def test_get_set_round_trip(sql_store):
    assert await sql_store.get("missing") is None
    assert await sql_store.set("k", {"mean": 1.5, "sampleCount": 2}, ttl_seconds=60)
    assert await sql_store.get("k") == {"mean": 1.5, "sampleCount": 2}


async def test_set_overwrites(sql_store):
    await sql_store.set("k", 1)
    await sql_store.set("k", 2)
    assert await sql_store.get("k") == 2


async def test_mget_preserves_order(sql_store):
    await sql_store.set("a", 1)
    await sql_store.set("c", 3)
    assert await sql_store.mget(["c", "b", "a"]) == [3, None, 1]
    assert await sql_store.mget([]) == []


async def test_expired_entries(sql_store):
    await sql_store.set("stale", 1, ttl_seconds=-1)
    await sql_store.set("fresh", 2, ttl_seconds=3600)

    assert await sql_store.get("stale") is None
    assert await sql_store.cleanup_expired() == 1
    assert await sql_store.get("fresh") == 2


async def test_session_factory_is_registered(sql_store):
    assert get_session_factory() is sql_store.session_factory


async def test_baseline_service_over_sql(sql_store, clock):
    service = BaselineService(sql_store, clock=clock)
    result = await service.batch_update(
        [{"type": "satellite_fires", "region": "amazon", "count": v} for v in (8, 12) * 5]
    )
    assert result.updated == 10

    verdict = await service.evaluate_anomaly("satellite_fires", "amazon", 20)
    assert verdict.learning is False
    assert verdict.baseline.sample_count == 10
    assert verdict.anomaly is not None
