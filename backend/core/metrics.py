"""In-process metrics rendered in Prometheus text exposition format."""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple

LabelValues = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"").replace("\n", "\\n")


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.label_names = list(label_names or [])
        self._values: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def _add(self, labels: Optional[Dict[str, str]], amount: float) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(self._key(labels), 0.0)

    def _render_labels(self, values: LabelValues) -> str:
        if not self.label_names:
            return ""
        pairs = ",".join(f'{n}="{_escape(v)}"' for n, v in zip(self.label_names, values))
        return "{" + pairs + "}"

    def export(self) -> List[str]:
        lines = [f"# TYPE {self.name} {self.kind}"]
        with self._lock:
            for values, number in sorted(self._values.items()):
                lines.append(f"{self.name}{self._render_labels(values)} {number}")
        return lines

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


class Counter(_Metric):
    kind = "counter"

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("Counters can only increase")
        self._add(labels, amount)


class Gauge(_Metric):
    kind = "gauge"

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._values[self._key(labels)] = float(value)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        self._add(labels, amount)

    def dec(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        self._add(labels, -amount)


class MetricsRegistry:
    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, cls, name: str, label_names: Optional[Iterable[str]]):
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = cls(name, label_names)
                self._metrics[name] = metric
            elif not isinstance(metric, cls):
                raise ValueError(f"Metric {name} already registered as {metric.kind}")
            return metric

    def counter(self, name: str, label_names: Optional[Iterable[str]] = None) -> Counter:
        return self._get_or_create(Counter, name, label_names)

    def gauge(self, name: str, label_names: Optional[Iterable[str]] = None) -> Gauge:
        return self._get_or_create(Gauge, name, label_names)

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for metric in list(self._metrics.values()):
            lines.extend(metric.export())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        for metric in list(self._metrics.values()):
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter("http_requests_total", ["method", "path", "status"])
video_jobs_created_total = METRICS.counter("video_jobs_created_total", ["plan"])
video_jobs_deleted_total = METRICS.counter("video_jobs_deleted_total")
admission_denied_total = METRICS.counter("admission_denied_total", ["reason"])
provider_errors_total = METRICS.counter("provider_errors_total", ["operation", "kind"])
webhook_events_total = METRICS.counter("webhook_events_total", ["source", "type", "outcome"])
cache_lookups_total = METRICS.counter("cache_lookups_total", ["key", "outcome"])
voice_catalog_size = METRICS.gauge("voice_catalog_size")


_ID_SEGMENT = re.compile(r"^[0-9a-fA-F-]{8,}$|^\d+$|^user_[A-Za-z0-9]+$")


def normalize_path(path: str) -> str:
    """Collapse id-like path segments to :id to keep label cardinality low."""
    segments = [
        ":id" if _ID_SEGMENT.match(segment) else segment
        for segment in path.split("/")
        if segment
    ]
    return "/" + "/".join(segments)
