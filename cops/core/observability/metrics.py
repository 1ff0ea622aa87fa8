"""
Metrics — in-process counters and histograms for reconciliation passes.

No external dependencies. Enough for `cops run --once --json` summaries and
log enrichment; not a Prometheus exporter.

Names recorded by the orchestrator:
    reconcile_total{kind,outcome}     passes finished
    reconcile_errors{kind,error}      passes aborted, by error class
    reconcile_duration_ms{kind}       pass wall time
    child_writes{kind,action}         created / updated children
"""

from __future__ import annotations

import builtins
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Counter:
    """Monotonically increasing counter."""

    name: str
    value: int = 0
    labels: dict[str, str] = field(default_factory=dict)

    def inc(self, n: int = 1) -> None:
        self.value += n

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": "counter", "value": self.value, "labels": self.labels}


@dataclass
class Histogram:
    """Tracks count, sum, min and max of observed values."""

    name: str
    _values: list[float] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    def observe(self, value: float) -> None:
        self._values.append(value)

    @property
    def count(self) -> int:
        return len(self._values)

    @property
    def total(self) -> float:
        return sum(self._values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": "histogram",
            "count": self.count,
            "total": round(self.total, 2),
            "min": builtins.min(self._values) if self._values else 0.0,
            "max": builtins.max(self._values) if self._values else 0.0,
            "labels": self.labels,
        }


class MetricsRegistry:
    """Get-or-create registry keyed by metric name + labels."""

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}

    @staticmethod
    def _key(name: str, labels: dict[str, str]) -> str:
        if not labels:
            return name
        return name + "{" + ",".join(f"{k}={v}" for k, v in sorted(labels.items())) + "}"

    def counter(self, name: str, **labels: str) -> Counter:
        key = self._key(name, labels)
        if key not in self._counters:
            self._counters[key] = Counter(name=name, labels=labels)
        return self._counters[key]

    def histogram(self, name: str, **labels: str) -> Histogram:
        key = self._key(name, labels)
        if key not in self._histograms:
            self._histograms[key] = Histogram(name=name, labels=labels)
        return self._histograms[key]

    def timer(self, name: str, **labels: str) -> TimerContext:
        """Context manager recording elapsed milliseconds into a histogram."""
        return TimerContext(self.histogram(name, **labels))

    def value(self, name: str, **labels: str) -> int:
        """Current value of a counter (0 if never incremented)."""
        counter = self._counters.get(self._key(name, labels))
        return counter.value if counter else 0

    def to_dict(self) -> dict[str, list[dict]]:
        return {
            "counters": [c.to_dict() for c in self._counters.values()],
            "histograms": [h.to_dict() for h in self._histograms.values()],
        }


class TimerContext:
    """Context manager for timing a reconciliation pass."""

    def __init__(self, histogram: Histogram):
        self._histogram = histogram
        self._start: float = 0.0
        self.elapsed_ms: float = 0.0

    def __enter__(self) -> TimerContext:
        self._start = time.monotonic()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed_ms = (time.monotonic() - self._start) * 1000
        self._histogram.observe(self.elapsed_ms)
