"""
Clustering and correlation analysis over news, prediction and market streams.
"""

from signalwatch.analysis.types import (
    ClusteredEvent,
    CorrelationSignal,
    MarketQuote,
    PredictionMarket,
    RawItem,
    SignalEvidence,
    SignalType,
    SourceRef,
    SourceType,
    StreamSnapshot,
)
from signalwatch.analysis.tokenizer import jaccard_similarity, tokenize
from signalwatch.analysis.clustering import EventClusterer
from signalwatch.analysis.correlation import CorrelationDetector
from signalwatch.analysis.config import AnalysisConfig, DEFAULT_CONFIG

__all__ = [
    # Types
    "ClusteredEvent",
    "CorrelationSignal",
    "MarketQuote",
    "PredictionMarket",
    "RawItem",
    "SignalEvidence",
    "SignalType",
    "SourceRef",
    "SourceType",
    "StreamSnapshot",
    # Primitives
    "jaccard_similarity",
    "tokenize",
    # Engines
    "EventClusterer",
    "CorrelationDetector",
    # Config
    "AnalysisConfig",
    "DEFAULT_CONFIG",
]
