"""Prometheus exposition of the metric registry.

Services in this project never touch the global prometheus_client
REGISTRY. Each exporter owns a ``CollectorRegistry`` holding a collector
that reads one registry snapshot per scrape. Process-level metrics (for
example the lifecycle coordinator's) can be registered on the same
collector registry so a single scrape returns everything.
"""

import logging
from collections.abc import Iterator, Mapping

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import (
    CounterMetricFamily,
    GaugeMetricFamily,
    HistogramMetricFamily,
    InfoMetricFamily,
    Metric,
)
from prometheus_client.exposition import choose_encoder
from prometheus_client.registry import Collector
from prometheus_client.utils import floatToGoString

from jikji.collection.registry import (
    BUILTIN_PREFIX,
    MetricRegistry,
    MetricValue,
    exposition_name,
)
from jikji.models.config import MetricKind

logger = logging.getLogger(__name__)


class RegistryCollector(Collector):
    """Turns a registry snapshot into Prometheus metric families."""

    def __init__(self, registry: MetricRegistry, title: str = ""):
        self.registry = registry
        self.title = title

    def collect(self) -> Iterator[Metric]:
        snapshot = self.registry.snapshot()

        for value in snapshot.values():
            family = self._value_family(value)
            if family is not None:
                yield family

        yield from self._builtin_families(snapshot)

    def _value_family(self, value: MetricValue) -> Metric | None:
        # Entries that never succeeded stay absent rather than showing a placeholder
        if not value.has_succeeded or value.value is None:
            return None

        name = exposition_name(value.name)
        documentation = value.help or f"Result of the {value.name} query"
        label_names = list(value.labels)
        label_values = list(value.labels.values())

        match value.kind:
            case MetricKind.COUNTER:
                family: Metric = CounterMetricFamily(name, documentation, labels=label_names)
                family.add_metric(label_values, value.value)
            case MetricKind.HISTOGRAM:
                family = HistogramMetricFamily(name, documentation, labels=label_names)
                family.add_metric(
                    label_values,
                    buckets=[
                        (floatToGoString(bound), count)
                        for bound, count in value.cumulative_buckets()
                    ],
                    sum_value=value.sample_sum,
                )
            case _:
                family = GaugeMetricFamily(name, documentation, labels=label_names)
                family.add_metric(label_values, value.value)

        return family

    def _builtin_families(self, snapshot: Mapping[str, MetricValue]) -> Iterator[Metric]:
        info = InfoMetricFamily(BUILTIN_PREFIX, "Exporter configuration")
        info.add_metric([], {"title": self.title})
        yield info

        up = GaugeMetricFamily(
            f"{BUILTIN_PREFIX}_metric_up",
            "Whether the last collection of the metric succeeded (1=yes, 0=no)",
            labels=["metric"],
        )
        failures = CounterMetricFamily(
            f"{BUILTIN_PREFIX}_metric_failures",
            "Number of failed collections of the metric",
            labels=["metric"],
        )
        skipped = CounterMetricFamily(
            f"{BUILTIN_PREFIX}_metric_skipped",
            "Number of ticks skipped because the previous collection was still running",
            labels=["metric"],
        )
        last_success = GaugeMetricFamily(
            f"{BUILTIN_PREFIX}_metric_last_success_timestamp_seconds",
            "Unix time of the last successful collection of the metric",
            labels=["metric"],
        )

        for name, value in snapshot.items():
            up.add_metric([name], 1 if value.healthy else 0)
            failures.add_metric([name], value.failures)
            skipped.add_metric([name], value.skipped)
            if value.updated_at is not None:
                last_success.add_metric([name], value.updated_at)

        yield up
        yield failures
        yield skipped
        yield last_success


class SnapshotExporter:
    """Encodes the current registry contents for a scrape."""

    def __init__(
        self,
        registry: MetricRegistry,
        title: str = "",
        collector_registry: CollectorRegistry | None = None,
    ):
        self.registry = registry
        self.collector_registry = (
            collector_registry if collector_registry is not None else CollectorRegistry()
        )
        self.collector_registry.register(RegistryCollector(registry, title=title))

    def export(self, accept_header: str | None = None) -> tuple[bytes, str]:
        """Encode every known metric value.

        Args:
            accept_header: The scrape's Accept header; selects OpenMetrics
                when the scraper asks for it.

        Returns:
            The encoded body and its content type.
        """
        if accept_header:
            encoder, content_type = choose_encoder(accept_header)
            logger.debug(f"Encoding scrape as {content_type}")
            return encoder(self.collector_registry), content_type

        return generate_latest(self.collector_registry), CONTENT_TYPE_LATEST
