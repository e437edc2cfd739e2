"""
Prometheus Metrics for log-narrator.

Metrics Exposed:
    narrator_log_records_total        - Log lines by result (parsed/failed)
    narrator_log_truncations_total    - Times the tailed file shrank
    narrator_utterances_total         - Utterances extracted from records
    narrator_tasks_total              - Speak tasks settled, by outcome
    narrator_chunks_total             - Chunks by status (played/skipped/discarded)
    narrator_synthesis_seconds        - Backend synthesis latency
    narrator_queue_depth              - Tasks waiting behind the current one

The collector uses its own CollectorRegistry so several instances (tests,
embedded use) never collide in the default registry.

Usage:
    from log_narrator.core.metrics import metrics

    metrics.record_chunk("played")
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class NarratorMetrics:
    """Counters, gauges and histograms for the tail -> speak pipeline."""

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._records = Counter(
            "narrator_log_records_total",
            "Log lines processed by the tailer",
            ["result"],
            registry=self._registry,
        )
        self._truncations = Counter(
            "narrator_log_truncations_total",
            "Times the tailed log file shrank below the read offset",
            registry=self._registry,
        )
        self._utterances = Counter(
            "narrator_utterances_total",
            "Utterances extracted from assistant records",
            registry=self._registry,
        )
        self._tasks = Counter(
            "narrator_tasks_total",
            "Speak tasks settled",
            ["outcome"],
            registry=self._registry,
        )
        self._chunks = Counter(
            "narrator_chunks_total",
            "Chunks handled by the scheduler",
            ["status"],
            registry=self._registry,
        )
        self._synthesis_seconds = Histogram(
            "narrator_synthesis_seconds",
            "TTS backend synthesis latency in seconds",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._queue_depth = Gauge(
            "narrator_queue_depth",
            "Speak tasks waiting behind the current one",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_log_line(self, parsed: bool) -> None:
        self._records.labels(result="parsed" if parsed else "failed").inc()

    def record_truncation(self) -> None:
        self._truncations.inc()

    def record_utterance(self) -> None:
        self._utterances.inc()

    def record_task(self, outcome: str) -> None:
        self._tasks.labels(outcome=outcome).inc()

    def record_chunk(self, status: str, count: int = 1) -> None:
        if count > 0:
            self._chunks.labels(status=status).inc(count)

    def observe_synthesis(self, seconds: float) -> None:
        self._synthesis_seconds.observe(seconds)

    def set_queue_depth(self, depth: int) -> None:
        self._queue_depth.set(depth)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Metrics in Prometheus text format, with the matching content type."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide collector
metrics = NarratorMetrics()
