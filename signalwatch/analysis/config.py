"""
Analysis configuration - clustering thresholds, topic vocabulary, and source tables.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import Mapping

from signalwatch.analysis.types import SourceType

SIMILARITY_THRESHOLD = 0.5
DEFAULT_SOURCE_TIER = 4

# Words ignored when tokenizing titles
STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
        "be", "have", "has", "had", "do", "does", "did", "will", "would",
        "could", "should", "may", "might", "must", "shall", "can", "need",
        "it", "its", "this", "that", "these", "those", "i", "you", "he",
        "she", "we", "they", "what", "which", "who", "whom", "how", "when",
        "where", "why", "all", "each", "every", "both", "few", "more", "most",
        "other", "some", "such", "no", "not", "only", "same", "so", "than",
        "too", "very", "just", "also", "now", "new", "says", "said", "after",
    }
)

# Correlation thresholds
PREDICTION_SHIFT_THRESHOLD = 5.0
MARKET_MOVE_THRESHOLD = 2.0
NEWS_VELOCITY_THRESHOLD = 3.0
FLOW_PRICE_THRESHOLD = 1.5
RELATED_NEWS_QUIET_THRESHOLD = 2.0
MIN_SIGNAL_CONFIDENCE = 0.6

ENERGY_COMMODITY_SYMBOLS: frozenset[str] = frozenset({"CL=F", "NG=F"})

PIPELINE_KEYWORDS: tuple[str, ...] = ("pipeline", "pipelines", "line", "terminal")

FLOW_DROP_KEYWORDS: tuple[str, ...] = (
    "flow",
    "throughput",
    "capacity",
    "outage",
    "leak",
    "rupture",
    "shutdown",
    "maintenance",
    "curtailment",
    "force majeure",
    "halt",
    "halted",
    "reduced",
    "reduction",
    "drop",
    "offline",
    "suspend",
    "suspended",
    "stoppage",
)

# Topic vocabulary for velocity extraction (substring match on titles)
TOPIC_KEYWORDS: tuple[str, ...] = (
    "iran",
    "israel",
    "ukraine",
    "russia",
    "china",
    "taiwan",
    "oil",
    "crypto",
    "fed",
    "interest",
    "inflation",
    "recession",
    "war",
    "sanctions",
    "tariff",
    "ai",
    "tech",
    "layoff",
    "trump",
    "biden",
    "election",
)

# Prediction title keyword -> topics whose coverage would explain a move
TOPIC_MAPPINGS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "iran": ("iran", "israel", "oil", "sanctions"),
        "israel": ("israel", "iran", "war", "gaza"),
        "ukraine": ("ukraine", "russia", "war", "nato"),
        "russia": ("russia", "ukraine", "sanctions"),
        "china": ("china", "taiwan", "tariff", "trade"),
        "taiwan": ("taiwan", "china"),
        "trump": ("trump", "election", "tariff"),
        "fed": ("fed", "interest", "inflation", "recession"),
        "bitcoin": ("crypto", "bitcoin"),
        "recession": ("recession", "fed", "inflation"),
    }
)

# Source name -> trust tier (1 = most trusted)
SOURCE_TIERS: Mapping[str, int] = MappingProxyType(
    {
        "Reuters": 1,
        "AP News": 1,
        "AFP": 1,
        "Bloomberg": 1,
        "White House": 1,
        "State Dept": 1,
        "Pentagon": 1,
        "BBC World": 2,
        "Financial Times": 2,
        "Wall Street Journal": 2,
        "The Guardian": 2,
        "Al Jazeera": 2,
        "CNBC": 2,
        "Defense One": 2,
        "Bellingcat": 2,
        "CNN World": 3,
        "NPR News": 3,
        "Politico": 3,
        "The Diplomat": 3,
        "Hacker News": 4,
        "Ars Technica": 3,
        "The Verge": 3,
    }
)

# Source name -> category
SOURCE_TYPES: Mapping[str, SourceType] = MappingProxyType(
    {
        "Reuters": SourceType.WIRE,
        "AP News": SourceType.WIRE,
        "AFP": SourceType.WIRE,
        "White House": SourceType.GOV,
        "State Dept": SourceType.GOV,
        "Pentagon": SourceType.GOV,
        "UN News": SourceType.GOV,
        "Bellingcat": SourceType.INTEL,
        "Defense One": SourceType.INTEL,
        "The War Zone": SourceType.INTEL,
        "Janes": SourceType.INTEL,
        "BBC World": SourceType.MAINSTREAM,
        "The Guardian": SourceType.MAINSTREAM,
        "Al Jazeera": SourceType.MAINSTREAM,
        "CNN World": SourceType.MAINSTREAM,
        "NPR News": SourceType.MAINSTREAM,
        "Bloomberg": SourceType.MARKET,
        "Financial Times": SourceType.MARKET,
        "Wall Street Journal": SourceType.MARKET,
        "CNBC": SourceType.MARKET,
        "Hacker News": SourceType.TECH,
        "Ars Technica": SourceType.TECH,
        "The Verge": SourceType.TECH,
    }
)


@dataclass(frozen=True)
class AnalysisConfig:
    """Immutable thresholds and lookup tables injected into the engine."""

    similarity_threshold: float = SIMILARITY_THRESHOLD
    default_source_tier: int = DEFAULT_SOURCE_TIER
    stop_words: frozenset[str] = STOP_WORDS
    source_tiers: Mapping[str, int] = field(default_factory=lambda: SOURCE_TIERS)
    source_types: Mapping[str, SourceType] = field(default_factory=lambda: SOURCE_TYPES)

    topic_keywords: tuple[str, ...] = TOPIC_KEYWORDS
    topic_mappings: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: TOPIC_MAPPINGS
    )
    pipeline_keywords: tuple[str, ...] = PIPELINE_KEYWORDS
    flow_drop_keywords: tuple[str, ...] = FLOW_DROP_KEYWORDS
    energy_symbols: frozenset[str] = ENERGY_COMMODITY_SYMBOLS

    prediction_shift_threshold: float = PREDICTION_SHIFT_THRESHOLD
    market_move_threshold: float = MARKET_MOVE_THRESHOLD
    news_velocity_threshold: float = NEWS_VELOCITY_THRESHOLD
    flow_price_threshold: float = FLOW_PRICE_THRESHOLD
    related_news_quiet_threshold: float = RELATED_NEWS_QUIET_THRESHOLD
    min_signal_confidence: float = MIN_SIGNAL_CONFIDENCE
    convergence_window: timedelta = field(default=timedelta(minutes=60))
    cluster_size_warning: int = 500

    def source_tier(self, source: str) -> int:
        return self.source_tiers.get(source, self.default_source_tier)

    def source_type(self, source: str) -> SourceType:
        return self.source_types.get(source, SourceType.OTHER)


DEFAULT_CONFIG = AnalysisConfig()


def find_related_topics(title: str, config: AnalysisConfig = DEFAULT_CONFIG) -> list[str]:
    """Topics whose coverage would explain movement on a prediction title."""
    lower_title = title.lower()
    related: list[str] = []
    for key, topics in config.topic_mappings.items():
        if key in lower_title:
            related.extend(topics)
    return list(dict.fromkeys(related))


def includes_keyword(text: str, keywords: tuple[str, ...]) -> bool:
    """Check if text contains any of the keywords."""
    return any(keyword in text for keyword in keywords)
