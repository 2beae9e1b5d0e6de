from signalwatch.pipeline.engine import (
    CountEvaluation,
    CycleResult,
    IngestResult,
    SignalEngine,
)
from signalwatch.pipeline.scheduler import CycleInputs, CycleScheduler

__all__ = [
    "CountEvaluation",
    "CycleResult",
    "IngestResult",
    "SignalEngine",
    "CycleInputs",
    "CycleScheduler",
]
