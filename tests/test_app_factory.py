"""Tests for the application factory."""

import pytest

from jikji import create_app
from jikji.app import App
from jikji.collection.scheduler import SchedulerState
from jikji.config import Settings
from jikji.exceptions import ConfigurationError
from jikji.models.config import Configuration, Database, Driver, MetricSpec
from tests.testing_utils import StubExecutorFactory


class TestCreateApp:
    """Test application construction and startup."""

    def test_builds_services(self, app: App):
        assert isinstance(app, App)
        scheduler = app.container.scheduler()
        assert set(scheduler.jobs) == {"jobs.delayed", "orders.open"}
        assert scheduler.state == SchedulerState.INITIALIZING
        assert app.container.exporter().registry is scheduler.registry

    def test_starts_collection(
        self,
        test_settings: Settings,
        test_configuration: Configuration,
        executor_factory: StubExecutorFactory,
    ):
        app = create_app(
            test_settings,
            configuration=test_configuration,
            executor_factory=executor_factory,
        )
        try:
            assert app.container.scheduler().state == SchedulerState.RUNNING
        finally:
            app.container.lifecycle_coordinator().shutdown()

        assert app.container.scheduler().state == SchedulerState.STOPPED

    def test_invalid_configuration_starts_nothing(self, test_settings: Settings):
        configuration = Configuration(
            databases=(
                Database(
                    driver=Driver.SQLITE,
                    metrics=(MetricSpec(name="a", frequency="-5m", query="SELECT 1"),),
                ),
            )
        )
        factory = StubExecutorFactory()

        with pytest.raises(ConfigurationError, match="-5m"):
            create_app(test_settings, configuration=configuration, executor_factory=factory)

        assert factory.executors == {}

    def test_invalid_settings(self, test_settings: Settings, test_configuration: Configuration):
        settings = test_settings.model_copy(update={"waitress_threads": 0})

        with pytest.raises(ConfigurationError, match="WAITRESS_THREADS"):
            create_app(settings, configuration=test_configuration)

    def test_loads_configuration_file(self, test_settings: Settings, tmp_path):
        path = tmp_path / "jikji.toml"
        path.write_text(
            """
title = "From File"

[[databases]]
driver = "sqlite"

[[databases.metrics]]
name = "answer"
frequency = "1m"
query = "SELECT 42"
"""
        )
        settings = test_settings.model_copy(update={"config_file": path})

        app = create_app(settings, skip_background_services=True)
        try:
            assert app.container.scheduler().tick("answer").value == "success"
            assert app.container.metric_registry().get("answer").value == 42
        finally:
            app.container.scheduler().shutdown(grace_period=0)
