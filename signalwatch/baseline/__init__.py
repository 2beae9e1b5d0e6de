"""
Temporal baselines and anomaly evaluation for periodic activity counts.
"""

from signalwatch.baseline.types import (
    AnomalyQueryResult,
    AnomalyResult,
    BaselineRecord,
    BaselineStats,
    BaselineType,
    BaselineUpdate,
    BatchUpdateResult,
    Severity,
)
from signalwatch.baseline.service import BaselineService, get_severity, make_key

__all__ = [
    "AnomalyQueryResult",
    "AnomalyResult",
    "BaselineRecord",
    "BaselineStats",
    "BaselineType",
    "BaselineUpdate",
    "BatchUpdateResult",
    "Severity",
    "BaselineService",
    "get_severity",
    "make_key",
]
