"""In-process metrics with a text exposition format for the relay."""

from __future__ import annotations

import math
import re
import threading
from dataclasses import dataclass
from typing import Iterable

_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*\Z")
_LABEL_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*\Z")

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_Sample = tuple[str, dict[str, str], float]


def _format_value(value: float) -> str:
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _escape_label(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str) -> None:
        if not _NAME_RE.match(name):
            raise ValueError(f"invalid metric name: {name!r}")
        if not help:
            raise ValueError("help text must not be empty")
        self.name = name
        self.help = help
        self._lock = threading.Lock()

    def _samples(self) -> list[_Sample]:
        raise NotImplementedError


class Counter(_Metric):
    """A monotonically increasing integer count."""

    kind = "counter"

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def inc(self, amount: int = 1) -> None:
        """Add ``amount`` (never negative) to the count."""
        if amount < 0:
            raise ValueError("counters can only increase")
        with self._lock:
            self._value += amount

    def _samples(self) -> list[_Sample]:
        return [(self.name, {}, self._value)]


class CounterVec(_Metric):
    """A family of counters told apart by label values."""

    kind = "counter"

    def __init__(self, name: str, help: str, label_names: Iterable[str]) -> None:
        super().__init__(name, help)
        self.label_names = tuple(label_names)
        for label in self.label_names:
            if not _LABEL_RE.match(label) or label.startswith("__"):
                raise ValueError(f"invalid label name: {label!r}")
        self._children: dict[tuple[str, ...], Counter] = {}

    def labels(self, *args: str) -> Counter:
        """Return the counter for these label values, creating it on first use."""
        if len(args) != len(self.label_names):
            raise ValueError(
                f"expected {len(self.label_names)} label values, got {len(args)}"
            )
        key = tuple(str(a) for a in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = Counter(self.name, self.help)
                self._children[key] = child
            return child

    def _samples(self) -> list[_Sample]:
        with self._lock:
            items = sorted(self._children.items())
        return [
            (self.name, dict(zip(self.label_names, key)), child.value)
            for key, child in items
        ]


class Gauge(_Metric):
    """An integer value that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def set(self, value: int) -> None:
        with self._lock:
            self._value = value

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def dec(self, amount: int = 1) -> None:
        with self._lock:
            self._value -= amount

    def _samples(self) -> list[_Sample]:
        return [(self.name, {}, self._value)]


class Histogram(_Metric):
    """Observations counted into cumulative buckets."""

    kind = "histogram"

    def __init__(
        self, name: str, help: str, buckets: Iterable[float] = DEFAULT_BUCKETS
    ) -> None:
        super().__init__(name, help)
        bounds = [float(b) for b in buckets if not math.isinf(b)]
        if not bounds:
            raise ValueError("histogram needs at least one finite bucket")
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be strictly increasing")
        self.buckets = tuple(bounds)
        self._counts = [0] * len(bounds)
        self._count = 0
        self._sum = 0.0

    @property
    def count(self) -> int:
        return self._count

    @property
    def sum(self) -> float:
        return self._sum

    def bucket_counts(self) -> list[tuple[float, int]]:
        """Cumulative counts per upper bound, ending with ``+inf``."""
        with self._lock:
            result = []
            running = 0
            for bound, hits in zip(self.buckets, self._counts):
                running += hits
                result.append((bound, running))
            result.append((math.inf, self._count))
        return result

    def observe(self, value: float) -> None:
        """Record one observation."""
        with self._lock:
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    self._counts[i] += 1
                    break
            self._count += 1
            self._sum += value

    def _samples(self) -> list[_Sample]:
        samples: list[_Sample] = [
            (f"{self.name}_bucket", {"le": _format_value(bound)}, hits)
            for bound, hits in self.bucket_counts()
        ]
        samples.append((f"{self.name}_sum", {}, self._sum))
        samples.append((f"{self.name}_count", {}, self._count))
        return samples


class Registry:
    """A set of uniquely named metrics rendered together."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: _Metric) -> None:
        """Add a metric; a second metric with the same name is refused."""
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"metric already registered: {metric.name}")
            self._metrics[metric.name] = metric

    def __contains__(self, name: object) -> bool:
        return name in self._metrics

    def render(self) -> str:
        """Render every non-empty metric in the text exposition format."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        lines: list[str] = []
        for metric in metrics:
            samples = metric._samples()
            if not samples:
                continue
            lines.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for sample_name, labels, value in samples:
                if labels:
                    rendered = ",".join(
                        f'{k}="{_escape_label(v)}"' for k, v in labels.items()
                    )
                    lines.append(f"{sample_name}{{{rendered}}} {_format_value(value)}")
                else:
                    lines.append(f"{sample_name} {_format_value(value)}")
        return "".join(line + "\n" for line in lines)


@dataclass
class NostrMetrics:
    """The relay's metrics, shared by every connection."""

    query_sub: Histogram
    query_db: Histogram
    db_connections: Gauge
    write_events: Histogram
    sent_events: CounterVec
    connections: Counter
    disconnects: CounterVec
    query_aborts: CounterVec
    cmd_req: Counter
    cmd_event: Counter
    cmd_close: Counter
    cmd_auth: Counter


def create_metrics() -> tuple[Registry, NostrMetrics]:
    """Create the relay's metrics and a registry holding all of them."""
    metrics = NostrMetrics(
        query_sub=Histogram("nostr_query_seconds", "Subscription response times"),
        query_db=Histogram("nostr_filter_seconds", "Filter SQL query times"),
        write_events=Histogram(
            "nostr_events_write_seconds", "Event writing response times"
        ),
        sent_events=CounterVec(
            "nostr_events_sent_total", "Events sent to clients", ["source"]
        ),
        connections=Counter("nostr_connections_total", "New connections"),
        db_connections=Gauge("nostr_db_connections", "Active database connections"),
        query_aborts=CounterVec("nostr_query_abort_total", "Aborted queries", ["reason"]),
        cmd_req=Counter("nostr_cmd_req_total", "REQ commands"),
        cmd_event=Counter("nostr_cmd_event_total", "EVENT commands"),
        cmd_close=Counter("nostr_cmd_close_total", "CLOSE commands"),
        cmd_auth=Counter("nostr_cmd_auth_total", "AUTH commands"),
        disconnects=CounterVec(
            "nostr_disconnects_total", "Client disconnects", ["reason"]
        ),
    )
    registry = Registry()
    for metric in (
        metrics.query_sub,
        metrics.query_db,
        metrics.write_events,
        metrics.sent_events,
        metrics.connections,
        metrics.db_connections,
        metrics.query_aborts,
        metrics.cmd_req,
        metrics.cmd_event,
        metrics.cmd_close,
        metrics.cmd_auth,
        metrics.disconnects,
    ):
        registry.register(metric)
    return registry, metrics