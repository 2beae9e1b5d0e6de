"""
Event clustering - groups near-duplicate news items into clustered events.

Clusters are formed greedily around the first unassigned item (its
"representative"): every later unassigned item whose title is similar enough to
the representative joins it. Membership is not transitive, so the result
depends on input order. Comparisons are O(n²); batches in the low hundreds are
the intended size.
"""

import re
import time
from datetime import datetime

from loguru import logger

from signalwatch.analysis.config import DEFAULT_CONFIG, AnalysisConfig
from signalwatch.analysis.tokenizer import TokenCache, jaccard_similarity
from signalwatch.analysis.types import ClusteredEvent, RawItem, SourceRef

_NON_WORD = re.compile(r"\W", re.ASCII)


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def generate_cluster_id(items: list[RawItem]) -> str:
    """Deterministic id from the earliest member's timestamp and title prefix."""
    first = min(items, key=lambda item: item.published)
    return f"{_epoch_ms(first.published)}-{_NON_WORD.sub('', first.title[:20])}"


class EventClusterer:
    """
    Groups RawItems whose titles share enough tokens.
    """

    def __init__(self, config: AnalysisConfig = DEFAULT_CONFIG):
        self.config = config

    def _with_tier(self, item: RawItem) -> RawItem:
        if item.tier is not None:
            return item
        return item.model_copy(update={"tier": self.config.source_tier(item.source)})

    def group(self, items: list[RawItem]) -> list[list[RawItem]]:
        """Greedy first-representative-wins grouping, in input order."""
        cache = TokenCache(self.config.stop_words)
        cache.warm(item.title for item in items)

        groups: list[list[RawItem]] = []
        assigned: set[int] = set()

        for i, item in enumerate(items):
            if i in assigned:
                continue

            group = [item]
            assigned.add(i)
            tokens_i = cache.tokens(item.title)

            for j in range(i + 1, len(items)):
                if j in assigned:
                    continue
                other = items[j]
                sim = jaccard_similarity(tokens_i, cache.tokens(other.title))
                if sim >= self.config.similarity_threshold:
                    group.append(other)
                    assigned.add(j)

            groups.append(group)

        return groups

    def _build_event(self, group: list[RawItem]) -> ClusteredEvent:
        ranked = sorted(group, key=lambda item: (item.tier, -item.published.timestamp()))
        primary = ranked[0]
        dates = [item.published for item in group]

        return ClusteredEvent(
            id=generate_cluster_id(group),
            primary_title=primary.title,
            primary_source=primary.source,
            primary_link=primary.link,
            source_count=len(group),
            top_sources=[
                SourceRef(name=item.source, tier=item.tier, url=item.link)
                for item in ranked[:3]
            ],
            all_items=list(group),
            first_seen=min(dates),
            last_updated=max(dates),
            is_alert=any(item.is_alert for item in group),
        )

    def cluster(self, items: list[RawItem]) -> list[ClusteredEvent]:
        """
        Cluster items into events.

        Args:
            items: RawItems in arrival order

        Returns:
            ClusteredEvents sorted by last_updated, newest first
        """
        if not items:
            return []

        start_time = time.time()
        if len(items) > self.config.cluster_size_warning:
            logger.warning(
                f"[Cluster] {len(items)} items exceeds the comfortable batch size "
                f"of {self.config.cluster_size_warning}; clustering is O(n²)"
            )

        tiered = [self._with_tier(item) for item in items]
        events = [self._build_event(group) for group in self.group(tiered)]
        events.sort(key=lambda event: event.last_updated, reverse=True)

        elapsed = time.time() - start_time
        logger.info(
            f"[Cluster] {len(items)} items -> {len(events)} events in {elapsed:.3f}s"
        )
        return events
