"""
Process-local counters rendered in the Prometheus text format.

Counters are registered once at import time and shared by the whole
process; /metrics renders them. Tests reset values between cases.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple

LabelValues = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _render_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(value)


class Counter:
    def __init__(self, name: str, documentation: str, label_names: Iterable[str] = ()):
        self.name = name
        self.documentation = documentation
        self.label_names: Tuple[str, ...] = tuple(label_names)
        self._values: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name}: unknown labels {sorted(unknown)}")
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counters only go up")
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(self._key(labels), 0.0)

    def samples(self) -> List[Tuple[LabelValues, float]]:
        with self._lock:
            return sorted(self._values.items())

    def render(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.documentation}", f"# TYPE {self.name} counter"]
        for values, total in self.samples():
            label_str = ""
            if self.label_names:
                pairs = ",".join(f'{n}="{_escape(v)}"' for n, v in zip(self.label_names, values))
                label_str = "{" + pairs + "}"
            lines.append(f"{self.name}{label_str} {_render_number(total)}")
        return lines

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


class MetricsRegistry:
    def __init__(self):
        self._counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, documentation: str, label_names: Iterable[str] = ()) -> Counter:
        with self._lock:
            existing = self._counters.get(name)
            if existing is None:
                existing = self._counters[name] = Counter(name, documentation, label_names)
            return existing

    def export_prometheus(self) -> str:
        with self._lock:
            counters = list(self._counters.values())
        lines: List[str] = []
        for counter in counters:
            lines.extend(counter.render())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            counters = list(self._counters.values())
        for counter in counters:
            counter.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total", "HTTP requests by method, route and status", ["method", "path", "status"]
)
content_lookups_total = METRICS.counter(
    "content_lookups_total", "Content resolutions by answering tier", ["tier", "outcome"]
)
content_store_failures_total = METRICS.counter(
    "content_store_failures_total", "Store errors absorbed by the resolver", ["tier", "op"]
)
content_generated_total = METRICS.counter(
    "content_generated_total", "Artifacts produced on demand", ["content_type"]
)
credits_charged_total = METRICS.counter(
    "credits_charged_total", "Credits deducted from users", ["reason"]
)
insufficient_credits_total = METRICS.counter(
    "insufficient_credits_total", "Unlocks refused for lack of credits"
)

_OPAQUE_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F-]{16,}|NST-[A-Z]+-\d+)$")


def normalize_path(path: str) -> str:
    """Collapse ids (numeric, uuid, NST user ids) to :id to bound label cardinality."""
    segments = [s for s in path.split("/") if s]
    return "/" + "/".join(":id" if _OPAQUE_SEGMENT.match(s) else s for s in segments)
