# mediapreview/infra/metrics.py
"""
In-process preview metrics, served as JSON on /metrics.

Series are keyed ``name{label=value,...}`` with labels sorted, e.g.
``preview_outcomes_total{media=image,outcome=success}``.
"""
from __future__ import annotations

import time
from collections import deque
from threading import Lock

from mediapreview.infra.logging_config import get_logger

logger = get_logger(__name__)

# Most recent observations kept per histogram
HISTOGRAM_MAX_SAMPLES = 10_000


class Histogram:
    """Sliding window of observations (durations, sizes)"""

    def __init__(self, max_samples: int = HISTOGRAM_MAX_SAMPLES):
        self._samples: deque[float] = deque(maxlen=max_samples)
        self.total_count = 0

    def observe(self, value: float) -> None:
        self._samples.append(value)
        self.total_count += 1

    def get_stats(self) -> dict:
        samples = sorted(self._samples)
        if not samples:
            return {"count": 0, "total": self.total_count, "min": 0, "max": 0, "avg": 0, "p50": 0, "p95": 0}

        def rank(q: float) -> float:
            return samples[min(int(len(samples) * q), len(samples) - 1)]

        return {
            "count": len(samples),
            "total": self.total_count,
            "min": samples[0],
            "max": samples[-1],
            "avg": sum(samples) / len(samples),
            "p50": rank(0.50),
            "p95": rank(0.95),
        }


def series_key(name: str, labels: dict | None = None) -> str:
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={labels[k]}" for k in sorted(labels)) + "}"


class MetricsCollector:
    """Thread-safe counters and histograms (Pillow work runs in threads)"""

    def __init__(self):
        self._lock = Lock()
        self._counters: dict[str, int] = {}
        self._histograms: dict[str, Histogram] = {}
        self._started = time.monotonic()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = series_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        key = series_key(name, labels)
        with self._lock:
            histogram = self._histograms.get(key)
            if histogram is None:
                histogram = self._histograms[key] = Histogram()
            histogram.observe(value)

    def get_metrics(self) -> dict:
        with self._lock:
            return {
                "uptime_seconds": round(time.monotonic() - self._started, 3),
                "counters": dict(self._counters),
                "histograms": {key: h.get_stats() for key, h in self._histograms.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            self._started = time.monotonic()
        logger.debug("Metrics reset")


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels or None)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels or None)


class Timer:
    """Observe elapsed seconds into a histogram on exit, even when the block raises"""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self.elapsed: float | None = None
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed = time.perf_counter() - self._started
        observe_histogram(self.metric_name, self.elapsed, **self.labels)


class PreviewMetrics:
    """Named series of the preview pipeline"""

    @staticmethod
    def outcome(kind: str, media: str | None = None) -> None:
        inc_counter("preview_outcomes_total", outcome=kind, media=media or "none")

    @staticmethod
    def fault(error_type: str) -> None:
        inc_counter("preview_faults_total", error=error_type)

    @staticmethod
    def bytes_saved(original_size: int, preview_size: int) -> None:
        """Only shrinkage counts; a preview that kept the original saves nothing."""
        saved = original_size - preview_size
        if saved > 0:
            inc_counter("preview_bytes_saved_total", saved)

    @staticmethod
    def track_run() -> Timer:
        return Timer("preview_duration_seconds")
