"""
Correlation detector - compares clustered news, prediction markets and quotes
across refresh cycles and emits typed signals.

Detects:
- Prediction market moves with little related coverage (prediction_leads_news)
- Topic coverage surges (velocity_spike)
- Market moves with little related coverage (silent_divergence)
- Energy price moves without pipeline news (flow_price_divergence)
- Pipeline flow disruptions (flow_drop)
- Independent source categories reporting together (convergence)
- Wire + government + intel agreement (triangulation)
"""

import math
import secrets
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from signalwatch.analysis.config import (
    DEFAULT_CONFIG,
    AnalysisConfig,
    find_related_topics,
    includes_keyword,
)
from signalwatch.analysis.types import (
    ClusteredEvent,
    CorrelationSignal,
    MarketQuote,
    PredictionMarket,
    SignalEvidence,
    SignalType,
    SourceType,
    StreamSnapshot,
    as_utc,
)
from signalwatch.services.deduplicator import SignalDeduplicator, make_dedupe_key

PREDICTION_KEY_LENGTH = 50
CRITICAL_SOURCE_TYPES = (SourceType.WIRE, SourceType.GOV, SourceType.INTEL)


def _finite(value: Any) -> float:
    """Coerce to a finite float, 0.0 otherwise."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def generate_signal_id(now: datetime) -> str:
    return f"sig-{int(now.timestamp() * 1000)}-{secrets.token_hex(3)}"


class CorrelationDetector:
    """
    Runs the signal heuristics once per refresh cycle.

    The detector keeps exactly one snapshot of the previous cycle. The first
    call only records that snapshot and returns no signals.
    """

    def __init__(
        self,
        config: AnalysisConfig = DEFAULT_CONFIG,
        source_type_of: Callable[[str], SourceType] | None = None,
        deduplicator: SignalDeduplicator | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self._source_type_of = source_type_of or config.source_type
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.deduplicator = deduplicator or SignalDeduplicator(clock=self._clock)
        self._previous: StreamSnapshot | None = None

    @property
    def previous_snapshot(self) -> StreamSnapshot | None:
        return self._previous

    def reset(self) -> None:
        """Forget the previous snapshot and every suppressed key."""
        self._previous = None
        self.deduplicator.clear()

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _source_type(self, source: str) -> SourceType:
        try:
            return SourceType(self._source_type_of(source))
        except (ValueError, KeyError, TypeError):
            return SourceType.OTHER

    def _is_fresh(self, signal_type: SignalType, identifier: str, value: float) -> bool:
        """Check the dedupe key and mark it when it is not suppressed."""
        key = make_dedupe_key(signal_type, identifier, value)
        if self.deduplicator.is_duplicate(key):
            return False
        self.deduplicator.mark_seen(key)
        return True

    def _signal(
        self,
        signal_type: SignalType,
        title: str,
        description: str,
        confidence: float,
        now: datetime,
        **evidence: Any,
    ) -> CorrelationSignal:
        return CorrelationSignal(
            id=generate_signal_id(now),
            type=signal_type,
            title=title,
            description=description,
            confidence=max(0.0, min(1.0, confidence)),
            timestamp=now,
            evidence=SignalEvidence(**evidence),
        )

    def extract_topics(self, events: list[ClusteredEvent]) -> dict[str, float]:
        """Per-topic activity: Σ(velocity + source_count) over matching events."""
        topics: dict[str, float] = {}
        for event in events:
            title = (event.primary_title or "").lower()
            activity = _finite(event.velocity) + _finite(event.source_count)
            for keyword in self.config.topic_keywords:
                if keyword in title:
                    topics[keyword] = topics.get(keyword, 0.0) + activity
        return topics

    @staticmethod
    def _market_related_news(market: MarketQuote, topics: dict[str, float]) -> float:
        name = (market.name or "").lower()
        symbol = (market.symbol or "").lower()
        return sum(
            v
            for k, v in topics.items()
            if (name and k in name) or (symbol and symbol in k)
        )

    # ── Heuristics ────────────────────────────────────────────────────────────

    def _detect_prediction_shifts(
        self,
        predictions: list[PredictionMarket],
        topics: dict[str, float],
        previous: StreamSnapshot,
        now: datetime,
    ) -> list[CorrelationSignal]:
        signals = []
        for pred in predictions:
            key = pred.title[:PREDICTION_KEY_LENGTH]
            prev = previous.prediction_prices.get(key)
            if prev is None:
                continue

            shift = abs(_finite(pred.yes_price) - prev)
            if shift < self.config.prediction_shift_threshold:
                continue

            related = find_related_topics(pred.title, self.config)
            news_activity = sum(topics.get(t, 0.0) for t in related)
            if news_activity >= self.config.news_velocity_threshold:
                continue
            if not self._is_fresh(SignalType.PREDICTION_LEADS_NEWS, key, shift):
                continue

            signals.append(
                self._signal(
                    SignalType.PREDICTION_LEADS_NEWS,
                    "Prediction Market Shift",
                    f'"{pred.title[:60]}..." moved +{shift:.1f}% with low news coverage',
                    min(0.9, 0.5 + shift / 20),
                    now,
                    prediction_shift=shift,
                    news_velocity=news_activity,
                    related_topics=related,
                )
            )
        return signals

    def _detect_velocity_spikes(
        self, topics: dict[str, float], previous: StreamSnapshot, now: datetime
    ) -> list[CorrelationSignal]:
        signals = []
        for topic, velocity in topics.items():
            prev_velocity = previous.news_velocity.get(topic, 0.0)
            if velocity <= self.config.news_velocity_threshold * 2:
                continue
            if velocity <= prev_velocity * 2:
                continue
            if not self._is_fresh(SignalType.VELOCITY_SPIKE, topic, velocity):
                continue

            signals.append(
                self._signal(
                    SignalType.VELOCITY_SPIKE,
                    "News Velocity Spike",
                    f'"{topic}" coverage surging: {velocity:.1f} activity score',
                    min(0.85, 0.4 + velocity / 20),
                    now,
                    news_velocity=velocity,
                    related_topics=[topic],
                )
            )
        return signals

    def _detect_silent_divergence(
        self, markets: list[MarketQuote], topics: dict[str, float], now: datetime
    ) -> list[CorrelationSignal]:
        signals = []
        for market in markets:
            raw_change = _finite(market.change)
            change = abs(raw_change)
            if change < self.config.market_move_threshold:
                continue

            related_news = self._market_related_news(market, topics)
            if related_news >= self.config.related_news_quiet_threshold:
                continue
            if not self._is_fresh(SignalType.SILENT_DIVERGENCE, market.symbol, change):
                continue

            signals.append(
                self._signal(
                    SignalType.SILENT_DIVERGENCE,
                    "Unexplained Market Move",
                    f"{market.name or market.symbol} moved {raw_change:+.2f}% "
                    f"with minimal news coverage",
                    min(0.8, 0.4 + change / 10),
                    now,
                    market_change=raw_change,
                    news_velocity=related_news,
                )
            )
        return signals

    def _detect_flow_price_divergence(
        self,
        markets: list[MarketQuote],
        topics: dict[str, float],
        flow_mentions: int,
        now: datetime,
    ) -> list[CorrelationSignal]:
        signals = []
        for market in markets:
            if market.symbol not in self.config.energy_symbols:
                continue

            change = _finite(market.change)
            if change < self.config.flow_price_threshold:
                continue

            related_news = self._market_related_news(market, topics)
            if related_news >= self.config.related_news_quiet_threshold:
                continue
            if flow_mentions:
                continue
            if not self._is_fresh(SignalType.FLOW_PRICE_DIVERGENCE, market.symbol, change):
                continue

            signals.append(
                self._signal(
                    SignalType.FLOW_PRICE_DIVERGENCE,
                    "Flow/Price Divergence",
                    f"{market.name or market.symbol} up {change:.2f}% "
                    f"without pipeline flow news",
                    min(0.85, 0.4 + change / 8),
                    now,
                    market_change=change,
                    news_velocity=related_news,
                    related_topics=["pipeline", market.display or market.symbol],
                )
            )
        return signals

    def detect_flow_drops(
        self, events: list[ClusteredEvent], now: datetime
    ) -> list[CorrelationSignal]:
        signals = []
        for event in events:
            titles = [event.primary_title] + [item.title for item in event.all_items]
            titles = [t.lower() for t in titles if t]

            has_pipeline = any(
                includes_keyword(t, self.config.pipeline_keywords) for t in titles
            )
            has_flow_drop = any(
                includes_keyword(t, self.config.flow_drop_keywords) for t in titles
            )
            if not (has_pipeline and has_flow_drop):
                continue
            if not self._is_fresh(SignalType.FLOW_DROP, event.id, event.source_count):
                continue

            signals.append(
                self._signal(
                    SignalType.FLOW_DROP,
                    "Pipeline Flow Drop",
                    f'"{event.primary_title[:70]}..." indicates reduced flow or disruption',
                    min(0.9, 0.4 + event.source_count / 10),
                    now,
                    news_velocity=event.source_count,
                    related_topics=["pipeline", "flow"],
                )
            )
        return signals

    def detect_convergence(
        self, events: list[ClusteredEvent], now: datetime
    ) -> list[CorrelationSignal]:
        signals = []
        window = self.config.convergence_window
        for event in events:
            if len(event.all_items) < 3:
                continue

            recent = [item for item in event.all_items if now - item.published < window]
            if len(recent) < 3:
                continue

            seen_types: list[SourceType] = []
            for item in recent:
                source_type = self._source_type(item.source)
                if source_type not in seen_types:
                    seen_types.append(source_type)
            if len(seen_types) < 3:
                continue

            named = [t for t in seen_types if t != SourceType.OTHER]
            if len(named) < 3:
                continue
            if not self._is_fresh(SignalType.CONVERGENCE, event.id, len(seen_types)):
                continue

            minutes = int(window.total_seconds() // 60)
            signals.append(
                self._signal(
                    SignalType.CONVERGENCE,
                    "Source Convergence",
                    f'"{event.primary_title[:50]}..." reported by '
                    f"{', '.join(t.value for t in named)} "
                    f"({len(recent)} sources in {minutes}m)",
                    min(0.95, 0.6 + len(seen_types) * 0.1),
                    now,
                    news_velocity=len(recent),
                    related_topics=[t.value for t in named],
                )
            )
        return signals

    def detect_triangulation(
        self, events: list[ClusteredEvent], now: datetime
    ) -> list[CorrelationSignal]:
        signals = []
        for event in events:
            if len(event.all_items) < 3:
                continue

            present = []
            for item in event.all_items:
                source_type = self._source_type(item.source)
                if source_type in CRITICAL_SOURCE_TYPES and source_type not in present:
                    present.append(source_type)
            if len(present) != len(CRITICAL_SOURCE_TYPES):
                continue
            if not self._is_fresh(SignalType.TRIANGULATION, event.id, 3):
                continue

            signals.append(
                self._signal(
                    SignalType.TRIANGULATION,
                    "Intel Triangulation",
                    f'Wire + Gov + Intel aligned: "{event.primary_title[:45]}..."',
                    0.9,
                    now,
                    news_velocity=event.source_count,
                    related_topics=[t.value for t in present],
                )
            )
        return signals

    # ── Entry point ───────────────────────────────────────────────────────────

    def detect(
        self,
        events: list[ClusteredEvent],
        predictions: list[PredictionMarket],
        markets: list[MarketQuote],
    ) -> list[CorrelationSignal]:
        """
        Run every heuristic against the current cycle.

        Args:
            events: Clustered events of this cycle
            predictions: Current prediction markets
            markets: Current market quotes

        Returns:
            At most one signal per type, each with confidence >= 0.6
        """
        now = as_utc(self._clock())
        events = events or []
        predictions = predictions or []
        markets = markets or []

        topics = self.extract_topics(events)

        current = StreamSnapshot(
            news_velocity=topics,
            market_changes={m.symbol: _finite(m.change) for m in markets},
            prediction_prices={
                p.title[:PREDICTION_KEY_LENGTH]: _finite(p.yes_price)
                for p in predictions
            },
            timestamp=now,
        )

        previous = self._previous
        if previous is None:
            self._previous = current
            logger.info("[Correlation] Warm-up cycle: snapshot stored, no signals")
            return []

        flow_drop_signals = self.detect_flow_drops(events, now)

        signals: list[CorrelationSignal] = []
        signals += self._detect_prediction_shifts(predictions, topics, previous, now)
        signals += self._detect_velocity_spikes(topics, previous, now)
        signals += self._detect_silent_divergence(markets, topics, now)
        signals += self._detect_flow_price_divergence(
            markets, topics, len(flow_drop_signals), now
        )
        signals += self.detect_convergence(events, now)
        signals += self.detect_triangulation(events, now)
        signals += flow_drop_signals

        self._previous = current

        unique: dict[SignalType, CorrelationSignal] = {}
        for signal in signals:
            unique.setdefault(signal.type, signal)

        result = [
            s for s in unique.values() if s.confidence >= self.config.min_signal_confidence
        ]
        logger.info(
            f"[Correlation] {len(signals)} candidates, {len(unique)} unique types, "
            f"{len(result)} emitted"
        )
        return result
