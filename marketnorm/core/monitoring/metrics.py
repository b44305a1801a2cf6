"""Prometheus metrics helpers for the transformation pipeline."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import DefaultDict

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


@dataclass
class _SourceStats:
    """Internal container tracking per-source run and failure counts."""

    total: int = 0
    failures: int = 0


class MetricsCollector:
    """Collects and exposes Prometheus metrics for pipeline and detector runs."""

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.pipeline_latency_seconds = Histogram(
            "marketnorm_pipeline_latency_seconds",
            "Latency distribution for end-to-end payload transformations.",
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, float("inf")),
            registry=self.registry,
        )
        self.pipeline_runs_total = Counter(
            "marketnorm_pipeline_runs_total",
            "Total count of transformations grouped by source and outcome.",
            ("source", "status"),
            registry=self.registry,
        )
        self.source_failure_rate = Gauge(
            "marketnorm_source_failure_rate",
            "Share of failed transformations per source (0-1 range).",
            ("source",),
            registry=self.registry,
        )
        self.records_skipped_total = Counter(
            "marketnorm_records_skipped_total",
            "Records dropped during transformation grouped by stage.",
            ("stage",),
            registry=self.registry,
        )
        self.outlier_events_total = Counter(
            "marketnorm_outlier_events_total",
            "Outlier events emitted by the detector grouped by type.",
            ("type",),
            registry=self.registry,
        )
        self._source_stats: DefaultDict[str, _SourceStats] = defaultdict(_SourceStats)

    def observe_pipeline(self, source: str, latency_seconds: float, *, success: bool = True) -> None:
        """Record one pipeline run."""

        self.pipeline_latency_seconds.observe(latency_seconds)
        stats = self._source_stats[source]
        stats.total += 1
        if not success:
            stats.failures += 1
        status = "success" if success else "failure"
        self.pipeline_runs_total.labels(source=source, status=status).inc()
        self.source_failure_rate.labels(source=source).set(stats.failures / stats.total)

    def record_skipped(self, stage: str, count: int) -> None:
        """Track records dropped by a stage; non-positive counts are ignored."""

        label = stage if stage in _ALLOWED_STAGES else "__other__"
        if count > 0:
            self.records_skipped_total.labels(stage=label).inc(count)

    def record_outlier(self, event_type: str, count: int = 1) -> None:
        self.outlier_events_total.labels(type=event_type).inc(count)

    def render(self) -> bytes:
        """Render metrics in Prometheus exposition format."""

        return generate_latest(self.registry)


_DEFAULT_COLLECTOR: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Return the process-wide metrics collector instance."""

    global _DEFAULT_COLLECTOR
    if _DEFAULT_COLLECTOR is None:
        _DEFAULT_COLLECTOR = MetricsCollector()
    return _DEFAULT_COLLECTOR


def configure_metrics_collector(collector: MetricsCollector | None) -> None:
    """Override the process-wide collector for application wiring or tests."""

    global _DEFAULT_COLLECTOR
    _DEFAULT_COLLECTOR = collector


_ALLOWED_STAGES = {
    "parsing",
    "dates",
    "volume",
    "validation",
}
