"""
In-process counters rendered in the Prometheus text exposition format.

Counters are process-local; each API instance exposes its own values at
GET /metrics and the scraper sums them.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

LabelValues = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", r"\\").replace("\n", r"\n").replace('"', r"\"")


def _render_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else repr(value)


class Counter:
    """Monotonic counter over a fixed set of label names."""

    def __init__(self, name: str, documentation: str = "", label_names: Sequence[str] = ()):
        self.name = name
        self.documentation = documentation
        self.label_names = tuple(label_names)
        self._series: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name}: unknown labels {sorted(unknown)}")
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError(f"{self.name}: counters only go up")
        key = self._key(labels)
        with self._lock:
            self._series[key] = self._series.get(key, 0.0) + amount

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._series.get(key, 0.0)

    def samples(self) -> Iterator[Tuple[LabelValues, float]]:
        with self._lock:
            snapshot = sorted(self._series.items())
        yield from snapshot

    def render(self) -> List[str]:
        lines = []
        if self.documentation:
            lines.append(f"# HELP {self.name} {self.documentation}")
        lines.append(f"# TYPE {self.name} counter")
        for label_values, value in self.samples():
            if self.label_names:
                pairs = ",".join(f'{n}="{_escape(v)}"' for n, v in zip(self.label_names, label_values))
                lines.append(f"{self.name}{{{pairs}}} {_render_number(value)}")
            else:
                lines.append(f"{self.name} {_render_number(value)}")
        return lines

    def clear(self) -> None:
        with self._lock:
            self._series.clear()


class MetricsRegistry:
    def __init__(self):
        self._counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, documentation: str = "", label_names: Sequence[str] = ()) -> Counter:
        with self._lock:
            existing = self._counters.get(name)
            if existing is not None:
                if existing.label_names != tuple(label_names):
                    raise ValueError(f"{name} already registered with labels {existing.label_names}")
                return existing
            metric = Counter(name, documentation, label_names)
            self._counters[name] = metric
            return metric

    def render_prometheus(self) -> str:
        with self._lock:
            counters = list(self._counters.values())
        lines: List[str] = []
        for metric in counters:
            lines.extend(metric.render())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Zero every series (tests)."""
        with self._lock:
            counters = list(self._counters.values())
        for metric in counters:
            metric.clear()


METRICS = MetricsRegistry()

billing_webhook_events_total = METRICS.counter(
    "billing_webhook_events_total",
    "Verified billing webhook deliveries by outcome.",
    ["event_type", "outcome"],
)
billing_webhook_failures_total = METRICS.counter(
    "billing_webhook_failures_total",
    "Verified deliveries whose processing raised and was acknowledged anyway.",
    ["event_type"],
)
ratelimit_block_total = METRICS.counter(
    "ratelimit_block_total",
    "Requests rejected by a rate limiter.",
    ["scope"],
)
job_duplicate_hits_total = METRICS.counter(
    "job_duplicate_hits_total",
    "Job submissions answered with an existing job.",
)
http_requests_total = METRICS.counter(
    "http_requests_total",
    "HTTP responses by method, route and status.",
    ["method", "path", "status"],
)


# ids in paths: numeric, uuid, or provider ids like cus_ / sub_ / evt_
_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F-]{32,36}|[a-z]{2,4}_[A-Za-z0-9]{6,})$")


def normalize_path(path: str) -> str:
    """Collapse id-like path segments to :id to keep label cardinality bounded."""
    segments = [":id" if _ID_SEGMENT.match(s) else s for s in path.split("/") if s]
    return "/" + "/".join(segments)
