"""In-process metrics for pipeline observability.

Counters, gauges and histograms are kept in memory and can be exported as
a dictionary or in Prometheus text format.
"""

from __future__ import annotations

import time
from collections import defaultdict
from threading import Lock
from typing import Any

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted(labels.items())) if labels else ()


class Counter:
    """A monotonically increasing counter.

    Example:
        counter = Counter("alerts_dispatched_total", "Alerts sent")
        counter.inc()
        counter.inc(labels={"level": "critical"})
    """

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._values: dict[LabelKey, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Increment the counter."""
        if value < 0:
            raise ValueError("Counter can only increase")
        with self._lock:
            self._values[_label_key(labels)] += value

    def get(self, labels: dict[str, str] | None = None) -> float:
        """Get current counter value for the given labels."""
        with self._lock:
            return self._values.get(_label_key(labels), 0)

    def total(self) -> float:
        """Sum across all label sets."""
        with self._lock:
            return sum(self._values.values())

    def items(self) -> list[tuple[dict[str, str], float]]:
        """All (labels, value) pairs."""
        with self._lock:
            return [(dict(key), value) for key, value in self._values.items()]


class Gauge(Counter):
    """A metric that can go up or down."""

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._values[_label_key(labels)] += value

    def dec(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Decrement the gauge."""
        self.inc(-value, labels)

    def set(self, value: float, labels: dict[str, str] | None = None) -> None:
        """Set the gauge value."""
        with self._lock:
            self._values[_label_key(labels)] = value


class Histogram:
    """Tracks the distribution of observed values."""

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._observations: dict[LabelKey, list[float]] = defaultdict(list)
        self._lock = Lock()

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        """Record an observation."""
        with self._lock:
            self._observations[_label_key(labels)].append(value)

    def get_stats(self, labels: dict[str, str] | None = None) -> dict[str, float]:
        """Count, sum, min, max and mean for the given labels."""
        with self._lock:
            values = list(self._observations.get(_label_key(labels), []))

        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "mean": 0}

        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "mean": sum(values) / len(values),
        }


class MetricsRegistry:
    """Registry for all pipeline metrics.

    Example:
        registry = MetricsRegistry.get_instance()
        registry.pipeline_runs.inc()
    """

    _instance: MetricsRegistry | None = None
    _lock = Lock()

    def __init__(self) -> None:
        self.messages_received = Counter(
            "situationcord_messages_received_total", "Webhook payloads received"
        )
        self.pipeline_runs = Counter(
            "situationcord_pipeline_runs_total", "Pipeline runs completed"
        )
        self.pipeline_failures = Counter(
            "situationcord_pipeline_failures_total", "Pipeline runs that failed"
        )
        self.analysis_fallbacks = Counter(
            "situationcord_analysis_fallbacks_total", "Analyses replaced by the fallback result"
        )
        self.qa_resolutions = Counter(
            "situationcord_qa_resolutions_total", "Q&A resolver invocations"
        )
        self.analyses_stored = Counter(
            "situationcord_analyses_stored_total", "Analysis records persisted"
        )
        self.alerts_dispatched = Counter(
            "situationcord_alerts_dispatched_total", "Alerts sent to the alert endpoint"
        )
        self.alerts_suppressed = Counter(
            "situationcord_alerts_suppressed_total", "Qualifying alerts skipped for ignored authors"
        )
        self.step_retries = Counter(
            "situationcord_step_retries_total", "Pipeline step retry attempts"
        )
        self.llm_requests = Counter("situationcord_llm_requests_total", "LLM API requests")
        self.llm_errors = Counter("situationcord_llm_errors_total", "LLM API errors")

        self.active_tasks = Gauge("situationcord_active_tasks", "Pipeline runs in flight")

        self.processing_duration = Histogram(
            "situationcord_processing_duration_seconds", "Pipeline run duration in seconds"
        )
        self.llm_request_duration = Histogram(
            "situationcord_llm_request_duration_seconds", "LLM request duration in seconds"
        )

        self._start_time = time.time()

    @classmethod
    def get_instance(cls) -> MetricsRegistry:
        """Get the singleton metrics registry instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (used between tests)."""
        with cls._lock:
            cls._instance = None

    def _counters(self) -> list[Counter]:
        return [value for value in vars(self).values() if isinstance(value, Counter)]

    def get_uptime_seconds(self) -> float:
        """Seconds since the registry was created."""
        return time.time() - self._start_time

    def get_all_metrics(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        return {
            "uptime_seconds": self.get_uptime_seconds(),
            "messages": {"received": self.messages_received.get()},
            "pipeline": {
                "runs": self.pipeline_runs.get(),
                "failures": self.pipeline_failures.get(),
                "active": self.active_tasks.get(),
                "duration_stats": self.processing_duration.get_stats(),
                "step_retries": self.step_retries.total(),
            },
            "analysis": {
                "stored": self.analyses_stored.get(),
                "fallbacks": self.analysis_fallbacks.get(),
                "qa_resolutions": self.qa_resolutions.get(),
            },
            "alerts": {
                "dispatched": self.alerts_dispatched.total(),
                "suppressed": self.alerts_suppressed.get(),
            },
            "llm": {
                "requests": self.llm_requests.total(),
                "errors": self.llm_errors.total(),
                "duration_stats": self.llm_request_duration.get_stats(),
            },
        }

    def to_prometheus_format(self) -> str:
        """Export counters and gauges in Prometheus text format."""
        lines: list[str] = []

        for metric in self._counters():
            kind = "gauge" if isinstance(metric, Gauge) else "counter"
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {kind}")
            for labels, value in metric.items():
                if labels:
                    label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
                    lines.append(f"{metric.name}{{{label_str}}} {value}")
                else:
                    lines.append(f"{metric.name} {value}")

        lines.append("# TYPE situationcord_uptime_seconds gauge")
        lines.append(f"situationcord_uptime_seconds {self.get_uptime_seconds()}")

        return "\n".join(lines)


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    return MetricsRegistry.get_instance()


class Timer:
    """Context manager for timing operations.

    Example:
        with Timer(metrics.processing_duration):
            await pipeline.run(message)
    """

    def __init__(self, histogram: Histogram, labels: dict[str, str] | None = None) -> None:
        self._histogram = histogram
        self._labels = labels
        self._start: float | None = None

    def __enter__(self) -> Timer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        if self._start is not None:
            self._histogram.observe(time.perf_counter() - self._start, labels=self._labels)
