"""
Temporal baseline types.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class BaselineType(str, Enum):
    """Activity counts that carry a temporal baseline."""

    MILITARY_FLIGHTS = "military_flights"
    VESSELS = "vessels"
    PROTESTS = "protests"
    NEWS = "news"
    AIS_GAPS = "ais_gaps"
    SATELLITE_FIRES = "satellite_fires"


class Severity(str, Enum):
    """Anomaly severity derived from the z-score."""

    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BaselineRecord(BaseModel):
    """Welford accumulator persisted per (type, region, weekday, month)."""

    mean: float = 0.0
    m2: float = 0.0
    sample_count: int = 0
    last_updated: datetime | None = None

    @property
    def variance(self) -> float:
        """Sample variance, clamped at zero."""
        if self.sample_count < 2:
            return 0.0
        return max(0.0, self.m2 / (self.sample_count - 1))

    @property
    def std_dev(self) -> float:
        return self.variance**0.5

    def updated(self, count: float, now: datetime) -> "BaselineRecord":
        """Return the record after folding in one observation (Welford)."""
        n = self.sample_count + 1
        delta = count - self.mean
        mean = self.mean + delta / n
        delta2 = count - mean
        return BaselineRecord(
            mean=mean, m2=self.m2 + delta * delta2, sample_count=n, last_updated=now
        )

    def to_store(self) -> dict:
        """Serialize for the key/value store."""
        return {
            "mean": self.mean,
            "m2": self.m2,
            "sampleCount": self.sample_count,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_store(cls, value: dict | None) -> "BaselineRecord":
        """Parse a stored value; anything unreadable is an empty baseline."""
        if not isinstance(value, dict):
            return cls()
        try:
            return cls(
                mean=float(value.get("mean", 0.0)),
                m2=float(value.get("m2", 0.0)),
                sample_count=int(value.get("sampleCount", 0)),
                last_updated=value.get("lastUpdated"),
            )
        except (TypeError, ValueError):
            return cls()


class BaselineUpdate(BaseModel):
    """One (type, region, count) observation."""

    type: str
    region: str | None = "global"
    count: float


class AnomalyResult(BaseModel):
    """Deviation of a live count from its baseline."""

    z_score: float
    severity: Severity
    multiplier: float


class BaselineStats(BaseModel):
    """Rounded baseline summary returned alongside an evaluation."""

    mean: float
    std_dev: float
    sample_count: int


class AnomalyQueryResult(BaseModel):
    """Outcome of evaluating a count: a verdict, or the learning state."""

    anomaly: AnomalyResult | None = None
    baseline: BaselineStats | None = None
    learning: bool = False
    sample_count: int = 0
    samples_needed: int | None = None


class BatchUpdateResult(BaseModel):
    """Outcome of a batch baseline update."""

    updated: int = 0
    skipped: int = 0
    failed: int = 0
    keys: list[str] = Field(default_factory=list)
