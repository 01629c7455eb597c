"""In-process metrics for the scheduler and its queues, exposed in the Prometheus text format."""

from __future__ import annotations

import bisect
import logging
import math
import re
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterator, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

QUEUES_SUBSYSTEM = "queues_metrics"
SCHEDULER_SUBSYSTEM = "yunikorn_scheduler_metrics"
SCHEDULING_LATENCY_NAME = "scheduling_duration_seconds"
METRICS_PORT = 9090
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_NAME_PATTERN = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_PATTERN = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")

Labels = tuple[tuple[str, str], ...]
Sample = tuple[str, Labels, float]


def _full_name(subsystem: str, name: str) -> str:
    full = "_".join(part for part in (subsystem, name) if part)
    if not _NAME_PATTERN.fullmatch(full):
        raise ValueError(f"invalid metric name: {full!r}")
    return full


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str = "", subsystem: str = "") -> None:
        self.name = _full_name(subsystem, name)
        self.help = help
        self._lock = threading.Lock()

    def samples(self) -> Iterator[Sample]:
        raise NotImplementedError


class Counter(_Metric):
    """A value that only goes up."""

    kind = "counter"

    def __init__(
        self,
        name: str,
        help: str = "",
        subsystem: str = "",
        labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(name, help, subsystem)
        self.labels: Labels = tuple(sorted((labels or {}).items()))
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self, amount: float = 1.0) -> None:
        """Increase the counter; a negative amount is an error."""
        if amount < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += float(amount)

    def samples(self) -> Iterator[Sample]:
        yield self.name, self.labels, self.value


class Gauge(_Metric):
    """A value that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help: str = "", subsystem: str = "") -> None:
        super().__init__(name, help, subsystem)
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value += float(amount)

    def dec(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value -= float(amount)

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def samples(self) -> Iterator[Sample]:
        yield self.name, (), self.value


class Histogram(_Metric):
    """Counts observations into cumulative buckets with upper bounds."""

    kind = "histogram"

    def __init__(
        self, name: str, help: str = "", subsystem: str = "", buckets: Sequence[float] = ()
    ) -> None:
        super().__init__(name, help, subsystem)
        bounds = sorted(float(b) for b in buckets if not math.isinf(b))
        if len(set(bounds)) != len(bounds):
            raise ValueError("histogram buckets must be unique")
        self.buckets: tuple[float, ...] = tuple(bounds)
        self._counts = [0] * (len(self.buckets) + 1)
        self._sum = 0.0

    def observe(self, value: float) -> None:
        """Record one observation."""
        index = bisect.bisect_left(self.buckets, value)
        with self._lock:
            self._counts[index] += 1
            self._sum += float(value)

    @property
    def count(self) -> int:
        with self._lock:
            return sum(self._counts)

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    @property
    def bucket_counts(self) -> list[int]:
        """Cumulative counts per bucket, ending with the +Inf bucket."""
        with self._lock:
            counts = list(self._counts)
        total = 0
        cumulative = []
        for c in counts:
            total += c
            cumulative.append(total)
        return cumulative

    def _reset(self) -> None:
        with self._lock:
            self._counts = [0] * (len(self.buckets) + 1)
            self._sum = 0.0

    def samples(self) -> Iterator[Sample]:
        with self._lock:
            counts = list(self._counts)
            total_sum = self._sum
        running = 0
        for bound, c in zip(self.buckets + (math.inf,), counts):
            running += c
            yield f"{self.name}_bucket", (("le", _format_value(bound)),), float(running)
        yield f"{self.name}_sum", (), total_sum
        yield f"{self.name}_count", (), float(running)


class CounterVec(_Metric):
    """A family of counters told apart by label values."""

    kind = "counter"

    def __init__(
        self, name: str, help: str = "", label_names: Sequence[str] = (), subsystem: str = ""
    ) -> None:
        super().__init__(name, help, subsystem)
        for label in label_names:
            if not _LABEL_PATTERN.fullmatch(label):
                raise ValueError(f"invalid label name: {label!r}")
        self.label_names: tuple[str, ...] = tuple(label_names)
        self._children: dict[Labels, Counter] = {}
        self._subsystem = subsystem
        self._base_name = name

    def labels(self, **kwargs: str) -> Counter:
        """Return the counter for these label values, creating it on first use."""
        if set(kwargs) != set(self.label_names):
            raise ValueError(
                f"expected labels {sorted(self.label_names)}, got {sorted(kwargs)}"
            )
        key: Labels = tuple(sorted((k, str(v)) for k, v in kwargs.items()))
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = Counter(self._base_name, self.help, self._subsystem, dict(key))
                self._children[key] = child
            return child

    def samples(self) -> Iterator[Sample]:
        with self._lock:
            children = sorted(self._children.items())
        for _, child in children:
            yield from child.samples()


class Registry:
    """A set of uniquely named collectors rendered together."""

    def __init__(self) -> None:
        self._collectors: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, collector: _Metric) -> _Metric:
        """Add a collector; a second collector with the same name is an error."""
        with self._lock:
            if collector.name in self._collectors:
                raise ValueError(
                    f"duplicate metrics collector registration attempted: {collector.name}"
                )
            self._collectors[collector.name] = collector
        return collector

    def render(self) -> str:
        """Render every registered collector in the text exposition format."""
        with self._lock:
            collectors = sorted(self._collectors.items())
        lines: list[str] = []
        for name, collector in collectors:
            samples = list(collector.samples())
            if not samples:
                continue
            lines.append(f"# HELP {name} {_escape_help(collector.help)}")
            lines.append(f"# TYPE {name} {collector.kind}")
            for sample_name, labels, value in samples:
                if labels:
                    rendered = ",".join(f'{k}="{_escape_label(v)}"' for k, v in labels)
                    lines.append(f"{sample_name}{{{rendered}}} {_format_value(value)}")
                else:
                    lines.append(f"{sample_name} {_format_value(value)}")
        return "".join(line + "\n" for line in lines)


REGISTRY = Registry()


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return count bucket bounds, the first being start, each factor times the one before."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    value = float(start)
    for _ in range(count):
        buckets.append(value)
        value *= factor
    return buckets


def since_in_microseconds(start: float) -> float:
    """Whole microseconds elapsed since start, a time.monotonic() value."""
    return float(int((time.monotonic() - start) * 1_000_000))


def since_in_seconds(start: float) -> float:
    """Seconds elapsed since start, a time.monotonic() value."""
    return time.monotonic() - start


class QueueMetrics:
    """Application and resource metrics of one queue."""

    def __init__(self, name: str, registry: Optional[Registry] = None) -> None:
        self.name = name
        self.app_metrics = CounterVec(
            "queue_metrics_for_apps",
            "Application Metrics related to queues etc.",
            ["result"],
            subsystem=QUEUES_SUBSYSTEM,
        )
        self.applications_added = self.app_metrics.labels(result="added")
        self.applications_rejected = self.app_metrics.labels(result="rejected")
        self.applications_running = Gauge("queue_running_apps", "active apps", QUEUES_SUBSYSTEM)
        self.applications_completed = Gauge(
            "queue_completed_apps", "completed apps", QUEUES_SUBSYSTEM
        )
        self.pending_resource = Gauge(
            "queue_pending_resource_metrics",
            "pending resource metrics related to queues etc.",
            QUEUES_SUBSYSTEM,
        )
        self.used_resource = Gauge(
            "queue_used_resource_metrics",
            "used resource metrics related to queues etc.",
            QUEUES_SUBSYSTEM,
        )
        self.available_resource = Gauge(
            "queue_available_resource_metrics",
            "available resource metrics related to queues etc.",
            QUEUES_SUBSYSTEM,
        )
        if registry is not None:
            for collector in (
                self.app_metrics,
                self.pending_resource,
                self.used_resource,
                self.available_resource,
            ):
                registry.register(collector)


_queue_registered = False
_queue_lock = threading.Lock()


def init_queue_metrics(name: str) -> QueueMetrics:
    """Create a queue's metrics; only the first queue's are registered globally."""
    global _queue_registered
    with _queue_lock:
        register = not _queue_registered
        _queue_registered = True
    return QueueMetrics(name, REGISTRY if register else None)


class SchedulerMetrics:
    """Scheduler-wide allocation, application, node and latency metrics."""

    def __init__(self, registry: Optional[Registry] = None) -> None:
        self.schedule_allocations = CounterVec(
            "schedule_attempts_total",
            "Number of attempts to schedule pods, by the result. 'unschedulable' means a pod "
            "could not be scheduled, while 'error' means an internal scheduler problem.",
            ["result"],
            subsystem=SCHEDULER_SUBSYSTEM,
        )
        self.allocation_schedule_successes = self.schedule_allocations.labels(result="scheduled")
        self.allocation_schedule_failures = self.schedule_allocations.labels(
            result="unschedulable"
        )
        self.allocation_schedule_errors = self.schedule_allocations.labels(result="error")
        self.schedule_applications = CounterVec(
            "submitted_apps_total",
            "Number of applications submitted, by the result.",
            ["result"],
            subsystem=SCHEDULER_SUBSYSTEM,
        )
        self.total_applications_added = self.schedule_applications.labels(result="added")
        self.total_applications_rejected = self.schedule_applications.labels(result="rejected")
        self.total_applications_running = Gauge("running_apps", "active apps", SCHEDULER_SUBSYSTEM)
        self.total_applications_completed = Gauge(
            "completed_apps", "completed apps", SCHEDULER_SUBSYSTEM
        )
        self.active_nodes = Gauge("active_nodes", "active nodes", SCHEDULER_SUBSYSTEM)
        self.failed_nodes = Gauge("failed_nodes", "failed nodes", SCHEDULER_SUBSYSTEM)
        self.scheduling_latency = Histogram(
            "scheduling_latency_seconds",
            "scheduling latency in seconds",
            SCHEDULER_SUBSYSTEM,
            buckets=exponential_buckets(0.001, 2, 15),
        )
        if registry is not None:
            for collector in (
                self.schedule_allocations,
                self.schedule_applications,
                self.scheduling_latency,
                self.total_applications_running,
                self.total_applications_completed,
                self.active_nodes,
                self.failed_nodes,
            ):
                registry.register(collector)

    def observe_scheduling_latency(self, start: float) -> None:
        """Record the time since start, a time.monotonic() value."""
        self.scheduling_latency.observe(since_in_seconds(start))


def _handler_for(registry: Registry) -> type[BaseHTTPRequestHandler]:
    class MetricsHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802
            if self.path.split("?", 1)[0] != "/metrics":
                self.send_error(404)
                return
            body = registry.render().encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", CONTENT_TYPE)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:
            logger.debug("metrics request: " + format, *args)

    return MetricsHandler


def start_metrics_server(port: int, registry: Optional[Registry] = None) -> ThreadingHTTPServer:
    """Serve the registry at /metrics in a background thread; raises OSError if the port is taken."""
    server = ThreadingHTTPServer(("", port), _handler_for(registry or REGISTRY))
    thread = threading.Thread(target=server.serve_forever, name="metrics-server", daemon=True)
    thread.start()
    return server


_scheduler_metrics: Optional[SchedulerMetrics] = None
_scheduler_lock = threading.Lock()


def get_scheduler_metrics() -> SchedulerMetrics:
    """Return the process-wide scheduler metrics, registering and serving them on first use."""
    global _scheduler_metrics
    with _scheduler_lock:
        if _scheduler_metrics is None:
            metrics = SchedulerMetrics(REGISTRY)
            logger.info("metrics started, service port %d", METRICS_PORT)
            try:
                start_metrics_server(METRICS_PORT, REGISTRY)
            except OSError as exc:
                logger.error("HTTP serving error: %s", exc)
            _scheduler_metrics = metrics
        return _scheduler_metrics


def reset() -> None:
    """Clear the scheduling latency of the process-wide scheduler metrics."""
    with _scheduler_lock:
        metrics = _scheduler_metrics
    if metrics is not None:
        metrics.scheduling_latency._reset()