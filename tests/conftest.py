"""
Pytest configuration and shared fixtures.

Provides a controllable clock, an in-memory store, and builders for news items
and clustered events.
"""

from datetime import datetime, timedelta, timezone

import pytest

from signalwatch.analysis.types import ClusteredEvent, RawItem, SourceRef
from signalwatch.baseline.service import BaselineService
from signalwatch.services.cache import MemoryStore

# A Wednesday in October, UTC
BASE_TIME = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_item(
    title: str,
    source: str = "Wire A",
    minutes_ago: float = 0,
    tier: int | None = None,
    is_alert: bool = False,
    now: datetime = BASE_TIME,
) -> RawItem:
    return RawItem(
        source=source,
        title=title,
        link=f"https://example.com/{source.replace(' ', '-').lower()}/{abs(hash(title)) % 10000}",
        published=now - timedelta(minutes=minutes_ago),
        is_alert=is_alert,
        tier=tier,
    )


def make_event(
    title: str,
    sources: list[str],
    minutes_ago: float = 0,
    velocity: float = 0.0,
    now: datetime = BASE_TIME,
    event_id: str | None = None,
) -> ClusteredEvent:
    items = [
        make_item(title, source=s, minutes_ago=minutes_ago, tier=1, now=now)
        for s in sources
    ]
    published = [i.published for i in items]
    return ClusteredEvent(
        id=event_id or f"evt-{abs(hash(title)) % 100000}",
        primary_title=title,
        primary_source=sources[0],
        primary_link=items[0].link,
        source_count=len(items),
        top_sources=[SourceRef(name=i.source, tier=1, url=i.link) for i in items[:3]],
        all_items=items,
        first_seen=min(published),
        last_updated=max(published),
        velocity=velocity,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a frozen, manually advanced clock."""
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def baseline_service(memory_store, clock) -> BaselineService:
    """Fixture providing a baseline service over a fresh in-memory store."""
    return BaselineService(memory_store, clock=clock)


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
