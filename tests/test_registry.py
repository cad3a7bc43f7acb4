"""Tests for the metric registry."""

import math
import threading

import pytest

from jikji.collection.registry import MetricRegistry, exported_names, exposition_name
from jikji.exceptions import ConfigurationError, DuplicateMetricName, UnknownMetricError
from jikji.models.config import MetricKind


class TestRegister:
    """Test metric registration."""

    def test_register_same_kind_twice_is_noop(self, registry: MetricRegistry):
        registry.register("jobs.delayed", MetricKind.COUNTER)
        registry.update("jobs.delayed", 3)

        registry.register("jobs.delayed", MetricKind.COUNTER)

        assert len(registry) == 1
        assert registry.get("jobs.delayed").value == 3

    def test_register_different_kind_fails(self, registry: MetricRegistry):
        registry.register("jobs.delayed", MetricKind.COUNTER)

        with pytest.raises(DuplicateMetricName) as exc_info:
            registry.register("jobs.delayed", MetricKind.GAUGE)

        assert exc_info.value.name == "jobs.delayed"
        assert isinstance(exc_info.value, ConfigurationError)
        assert registry.get("jobs.delayed").kind == MetricKind.COUNTER

    def test_new_entry_has_no_value(self, registry: MetricRegistry):
        registry.register("orders.open", "gauge", help="Open orders", labels={"driver": "mysql"})

        value = registry.get("orders.open")
        assert value.kind == MetricKind.GAUGE
        assert value.value is None
        assert value.has_succeeded is False
        assert value.help == "Open orders"
        assert dict(value.labels) == {"driver": "mysql"}

    def test_contains(self, registry: MetricRegistry):
        registry.register("a", MetricKind.GAUGE)

        assert "a" in registry
        assert "b" not in registry


class TestUpdates:
    """Test recording of successes, failures and skips."""

    def test_update_stores_value(self, registry: MetricRegistry):
        registry.register("a", MetricKind.GAUGE)

        value = registry.update("a", 12.5)

        assert value.value == 12.5
        assert value.has_succeeded is True
        assert value.healthy is True
        assert value.updated_at is not None

    def test_failure_keeps_last_value(self, registry: MetricRegistry):
        registry.register("a", MetricKind.GAUGE)
        registry.update("a", 42)
        updated_at = registry.get("a").updated_at

        registry.record_failure("a", "connection refused")
        value = registry.record_failure("a", "connection refused again")

        assert value.value == 42
        assert value.updated_at == updated_at
        assert value.healthy is False
        assert value.failures == 2
        assert value.consecutive_failures == 2
        assert value.last_error == "connection refused again"

    def test_success_after_failure_resets_consecutive_failures(self, registry: MetricRegistry):
        registry.register("a", MetricKind.GAUGE)
        registry.record_failure("a", "boom")

        value = registry.update("a", 1)

        assert value.healthy is True
        assert value.failures == 1
        assert value.consecutive_failures == 0
        assert value.last_error is None

    def test_record_skip(self, registry: MetricRegistry):
        registry.register("a", MetricKind.GAUGE)

        registry.record_skip("a")
        registry.record_skip("a")

        assert registry.get("a").skipped == 2

    def test_unknown_metric(self, registry: MetricRegistry):
        with pytest.raises(UnknownMetricError):
            registry.update("missing", 1)
        with pytest.raises(UnknownMetricError):
            registry.get("missing")

    def test_histogram_observations(self, registry: MetricRegistry):
        registry.register("latency", MetricKind.HISTOGRAM)

        for observation in (0.5, 1.0, 5, 50, 500):
            registry.update("latency", observation)

        value = registry.get("latency")
        assert value.buckets == (1.0, 10.0, 100.0)
        assert value.bucket_counts == (2, 1, 1)
        assert value.sample_count == 5
        assert value.sample_sum == pytest.approx(556.5)
        assert value.value == 500
        assert value.cumulative_buckets() == [
            (1.0, 2),
            (10.0, 3),
            (100.0, 4),
            (math.inf, 5),
        ]


class TestSnapshot:
    """Test snapshot consistency."""

    def test_snapshot_is_isolated_from_later_writes(self, registry: MetricRegistry):
        registry.register("a", MetricKind.GAUGE)
        registry.update("a", 1)

        snapshot = registry.snapshot()
        registry.update("a", 2)
        registry.register("b", MetricKind.GAUGE)

        assert snapshot["a"].value == 1
        assert "b" not in snapshot
        assert registry.snapshot()["a"].value == 2

    def test_snapshot_is_read_only(self, registry: MetricRegistry):
        registry.register("a", MetricKind.GAUGE)

        snapshot = registry.snapshot()

        with pytest.raises(TypeError):
            snapshot["a"] = None  # type: ignore[index]

    def test_concurrent_writers_each_own_entry(self, registry: MetricRegistry):
        names = [f"metric{i}" for i in range(8)]
        for name in names:
            registry.register(name, MetricKind.COUNTER)

        def writer(name: str):
            for i in range(200):
                registry.update(name, i)

        threads = [threading.Thread(target=writer, args=(name,)) for name in names]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = registry.snapshot()
        assert all(snapshot[name].value == 199 for name in names)


class TestExpositionName:
    """Test conversion of metric names to Prometheus names."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("jobs.delayed", "jobs_delayed"),
            ("hubspot.actions.delayed", "hubspot_actions_delayed"),
            ("already_valid:name", "already_valid:name"),
            ("with-dash and space", "with_dash_and_space"),
            ("5xx.errors", "_5xx_errors"),
        ],
    )
    def test_exposition_name(self, name: str, expected: str):
        assert exposition_name(name) == expected

    def test_exported_names_follow_encoding_suffixes(self):
        assert exported_names("jobs.delayed", MetricKind.GAUGE) == {"jobs_delayed"}
        assert exported_names("orders", MetricKind.COUNTER) == {"orders", "orders_total"}
        assert exported_names("orders_total", MetricKind.COUNTER) == {"orders", "orders_total"}
        assert exported_names("latency", MetricKind.HISTOGRAM) == {
            "latency",
            "latency_bucket",
            "latency_count",
            "latency_sum",
        }
