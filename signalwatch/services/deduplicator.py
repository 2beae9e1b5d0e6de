"""
SignalDeduplicator - Suppresses repeated emission of the same correlation signal.

A signal is identified by a dedupe key ``<type>:<identifier>:<rounded value>``.
Once marked, the key stays suppressed for a fixed window from insertion and is
then eligible again. Expiry is checked lazily on lookup.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from loguru import logger

DEFAULT_WINDOW = timedelta(minutes=30)
PRUNE_THRESHOLD = 500
PRUNE_AGE = timedelta(hours=24)


def make_dedupe_key(signal_type: str, identifier: str, value: float) -> str:
    """Build ``type:identifier:value`` with the value rounded half-up to one decimal."""
    rounded = math.floor(float(value) * 10 + 0.5) / 10
    rounded_text = str(int(rounded)) if rounded.is_integer() else str(rounded)
    type_text = getattr(signal_type, "value", signal_type)
    return f"{type_text}:{identifier}:{rounded_text}"


class SignalDeduplicator:
    """
    In-process suppression of recently emitted signal keys.

    Usage:
        dedup = SignalDeduplicator()

        key = make_dedupe_key("velocity_spike", "iran", 7.25)
        if not dedup.is_duplicate(key):
            dedup.mark_seen(key)
            emit(signal)
    """

    def __init__(
        self,
        window: timedelta = DEFAULT_WINDOW,
        type_windows: dict[str, timedelta] | None = None,
        clock: Callable[[], datetime] | None = None,
        debug: bool = False,
    ):
        self._window = window
        self._type_windows = dict(type_windows or {})
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._seen: dict[str, datetime] = {}
        self._debug = debug
        self._stats = DeduplicatorStats()

    def window_for(self, key: str) -> timedelta:
        """Suppression window for a key, looked up by its type prefix."""
        signal_type = key.split(":", 1)[0]
        return self._type_windows.get(signal_type, self._window)

    def is_duplicate(self, key: str) -> bool:
        """True when ``key`` was marked within its suppression window."""
        seen_at = self._seen.get(key)
        if seen_at is None:
            return False

        if self._clock() - seen_at < self.window_for(key):
            self._stats.suppressed += 1
            self._log(f"SUPPRESS: {key[:60]}")
            return True

        del self._seen[key]
        self._log(f"EXPIRED: {key[:60]}")
        return False

    def mark_seen(self, key: str) -> None:
        """Record ``key`` as emitted now."""
        self._seen[key] = self._clock()
        self._stats.marked += 1
        self._log(f"MARK: {key[:60]}")

        if len(self._seen) > PRUNE_THRESHOLD:
            self._prune()

    def _prune(self) -> None:
        cutoff = self._clock() - PRUNE_AGE
        stale = [k for k, t in self._seen.items() if t < cutoff]
        for key in stale:
            del self._seen[key]
        if stale:
            logger.debug(f"[Deduplicator] Pruned {len(stale)} stale signal keys")

    def clear(self) -> None:
        """Forget every key."""
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.tracked = len(self._seen)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


class DeduplicatorStats:
    """Statistics for signal deduplication."""

    def __init__(self):
        self.marked: int = 0  # Keys recorded as emitted
        self.suppressed: int = 0  # Lookups that hit an active key
        self.tracked: int = 0  # Keys currently held

    @property
    def suppression_rate(self) -> float:
        """Share of lookups that were suppressed."""
        total = self.marked + self.suppressed
        if total == 0:
            return 0.0
        return self.suppressed / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "marked": self.marked,
            "suppressed": self.suppressed,
            "tracked": self.tracked,
            "suppression_rate": f"{self.suppression_rate:.2%}",
        }
