"""
Analysis types using Pydantic models.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Read naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SourceType(str, Enum):
    """Source category used by convergence and triangulation."""

    WIRE = "wire"
    GOV = "gov"
    INTEL = "intel"
    MAINSTREAM = "mainstream"
    MARKET = "market"
    TECH = "tech"
    OTHER = "other"


class SignalType(str, Enum):
    """Kinds of correlation signal."""

    PREDICTION_LEADS_NEWS = "prediction_leads_news"
    NEWS_LEADS_MARKETS = "news_leads_markets"
    SILENT_DIVERGENCE = "silent_divergence"
    VELOCITY_SPIKE = "velocity_spike"
    CONVERGENCE = "convergence"
    TRIANGULATION = "triangulation"
    FLOW_DROP = "flow_drop"
    FLOW_PRICE_DIVERGENCE = "flow_price_divergence"
    EXPLAINED_MARKET_MOVE = "explained_market_move"
    KEYWORD_SPIKE = "keyword_spike"


class RawItem(BaseModel):
    """A single news-like item as delivered by an upstream fetcher."""

    source: str
    title: str
    link: str = ""
    published: datetime
    is_alert: bool = False
    tier: int | None = None

    @field_validator("published")
    @classmethod
    def _published_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class SourceRef(BaseModel):
    """Reference to one reporting source of a clustered event."""

    name: str
    tier: int
    url: str


class ClusteredEvent(BaseModel):
    """Near-duplicate items grouped under one representative headline."""

    id: str
    primary_title: str
    primary_source: str
    primary_link: str
    source_count: int
    top_sources: list[SourceRef] = Field(default_factory=list)
    all_items: list[RawItem] = Field(default_factory=list)
    first_seen: datetime
    last_updated: datetime
    is_alert: bool = False
    velocity: float = 0.0  # sources per hour, attached upstream when known

    @property
    def member_count(self) -> int:
        return len(self.all_items)


class MarketQuote(BaseModel):
    """Financial quote for one symbol."""

    symbol: str
    name: str = ""
    display: str = ""
    price: float | None = None
    change: float | None = None  # percent change


class PredictionMarket(BaseModel):
    """Prediction market with its current yes price (0-100)."""

    title: str
    yes_price: float
    volume: float | None = None


class SignalEvidence(BaseModel):
    """Numbers backing a correlation signal."""

    model_config = ConfigDict(frozen=True)

    news_velocity: float | None = None
    market_change: float | None = None
    prediction_shift: float | None = None
    related_topics: list[str] | None = None


class CorrelationSignal(BaseModel):
    """A finding emitted by the correlation detector."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: SignalType
    title: str
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime
    evidence: SignalEvidence = Field(default_factory=SignalEvidence)


class StreamSnapshot(BaseModel):
    """Per-cycle state the detector compares the next cycle against."""

    news_velocity: dict[str, float] = Field(default_factory=dict)
    market_changes: dict[str, float] = Field(default_factory=dict)
    prediction_prices: dict[str, float] = Field(default_factory=dict)
    timestamp: datetime
