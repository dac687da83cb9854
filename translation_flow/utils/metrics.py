"""Call metrics: bounded history, per-strategy stats and rolling windows."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import math
import threading
import time
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional


MAX_HISTORY = 200
HISTORY_WINDOW = 50
MAX_STRATEGY_HISTORY = 500
MAX_WINDOW_ENTRIES = 2000

DEFAULT_WINDOWS = (("1m", 60.0), ("5m", 300.0), ("15m", 900.0))


@dataclass
class MetricsEntry:
    timestamp: float
    success: bool
    strategy: str
    target_lang: Optional[str]
    duration: Optional[float]
    cached: bool
    retries: int


def pick_quantile(sorted_values: List[float], quantile: float) -> float:
    if not sorted_values:
        return 0
    n = len(sorted_values)
    index = min(n - 1, max(0, math.ceil(n * quantile) - 1))
    return sorted_values[index]


def calculate_quantiles(values: Iterable[float]) -> Dict[str, float]:
    ordered = sorted(values)
    return {
        "p50": pick_quantile(ordered, 0.5),
        "p90": pick_quantile(ordered, 0.9),
        "p95": pick_quantile(ordered, 0.95),
        "p99": pick_quantile(ordered, 0.99),
    }


def _average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


@dataclass
class _StrategyStats:
    total: int = 0
    success: int = 0
    failure: int = 0
    cached: int = 0
    durations: Deque[float] = field(default_factory=lambda: deque(maxlen=MAX_STRATEGY_HISTORY))

    def add(self, entry: MetricsEntry) -> None:
        self.total += 1
        if entry.success:
            self.success += 1
        else:
            self.failure += 1
        if entry.cached:
            self.cached += 1
        if entry.duration is not None:
            self.durations.append(entry.duration)

    def summary(self) -> Dict[str, Any]:
        durations = list(self.durations)
        quantiles = calculate_quantiles(durations)
        return {
            "total": self.total,
            "success_rate": self.success / self.total if self.total else 0.0,
            "cached_rate": self.cached / self.total if self.total else 0.0,
            "average_duration": round(_average(durations)),
            "p50_duration": round(quantiles["p50"]),
            "p95_duration": round(quantiles["p95"]),
            "p99_duration": round(quantiles["p99"]),
        }


class RollingWindow:
    def __init__(self, name: str, window_seconds: float, max_entries: int = MAX_WINDOW_ENTRIES):
        self.name = name
        self.window_seconds = float(window_seconds)
        self._entries: Deque[MetricsEntry] = deque(maxlen=max_entries)

    def add(self, entry: MetricsEntry, now: float) -> None:
        self._entries.append(entry)
        self._prune(now)

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._entries and self._entries[0].timestamp < cutoff:
            self._entries.popleft()

    def stats(self, now: float) -> Dict[str, Any]:
        self._prune(now)
        entries = list(self._entries)
        total = len(entries)
        base: Dict[str, Any] = {
            "name": self.name,
            "window_seconds": self.window_seconds,
            "sample_size": total,
            "success_rate": 0.0,
            "failure_rate": 0.0,
            "cached_rate": 0.0,
            "average_duration": 0,
            "p50_duration": 0,
            "p90_duration": 0,
            "p95_duration": 0,
            "p99_duration": 0,
            "average_retries": 0.0,
            "strategies": {},
        }
        if not total:
            return base

        durations = [e.duration for e in entries if e.duration is not None]
        quantiles = calculate_quantiles(durations)
        success = sum(1 for e in entries if e.success)
        per_strategy: Dict[str, _StrategyStats] = {}
        for entry in entries:
            per_strategy.setdefault(entry.strategy, _StrategyStats()).add(entry)

        base.update(
            success_rate=success / total,
            failure_rate=1 - success / total,
            cached_rate=sum(1 for e in entries if e.cached) / total,
            average_duration=round(_average(durations)),
            p50_duration=round(quantiles["p50"]),
            p90_duration=round(quantiles["p90"]),
            p95_duration=round(quantiles["p95"]),
            p99_duration=round(quantiles["p99"]),
            average_retries=sum(e.retries for e in entries) / total,
            strategies={
                name: {
                    key: value
                    for key, value in stats.summary().items()
                    if key in {"total", "success_rate", "cached_rate", "average_duration", "p95_duration"}
                }
                for name, stats in per_strategy.items()
            },
        )
        return base


class TranslationMetrics:
    """Thread-safe collector. Totals are monotonic for the object's lifetime."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        windows: Iterable[tuple] = DEFAULT_WINDOWS,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._history: Deque[MetricsEntry] = deque(maxlen=MAX_HISTORY)
        self._totals = {"total": 0, "success": 0, "failure": 0, "cached": 0}
        self._strategies: Dict[str, _StrategyStats] = {}
        self._windows = [RollingWindow(name, seconds) for name, seconds in windows]

    def record_call(
        self,
        *,
        success: bool,
        strategy: str | None = None,
        target_lang: str | None = None,
        duration: float | None = None,
        cached: bool = False,
        retries: int | None = 0,
    ) -> MetricsEntry:
        now = self._clock()
        entry = MetricsEntry(
            timestamp=now,
            success=bool(success),
            strategy=strategy or "unknown",
            target_lang=target_lang,
            duration=float(duration) if isinstance(duration, (int, float)) else None,
            cached=bool(cached),
            retries=int(retries or 0),
        )
        with self._lock:
            self._history.append(entry)
            self._totals["total"] += 1
            self._totals["success" if entry.success else "failure"] += 1
            if entry.cached:
                self._totals["cached"] += 1
            self._strategies.setdefault(entry.strategy, _StrategyStats()).add(entry)
            for window in self._windows:
                window.add(entry, now)
        return entry

    def snapshot(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            recent = list(self._history)[-HISTORY_WINDOW:]
            totals = dict(self._totals)
            strategies = {name: stats.summary() for name, stats in self._strategies.items()}
            windows = {window.name: window.stats(now) for window in self._windows}

        durations = [e.duration for e in recent if e.duration is not None]
        quantiles = calculate_quantiles(durations)
        total = totals["total"]
        return {
            "totals": {
                **totals,
                "success_rate": totals["success"] / total if total else 0.0,
                "cached_rate": totals["cached"] / total if total else 0.0,
            },
            "recent": {
                "window_size": len(recent),
                "average_duration": round(_average(durations)),
                "p50_duration": round(quantiles["p50"]),
                "p90_duration": round(quantiles["p90"]),
                "p95_duration": round(quantiles["p95"]),
                "p99_duration": round(quantiles["p99"]),
                "average_retries": _average([e.retries for e in recent]),
            },
            "strategies": strategies,
            "windows": windows,
        }
