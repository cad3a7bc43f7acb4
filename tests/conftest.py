"""Pytest fixtures for exporter tests.

Scheduler and API tests run against ``StubExecutor``s so no database
server is needed; executor tests use real SQLite files in ``tmp_path``.
"""

from collections.abc import Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from jikji import create_app
from jikji.collection.registry import MetricRegistry
from jikji.config import Settings
from jikji.models.config import Configuration, Database, Driver, MetricSpec
from tests.testing_utils import StubExecutor, StubExecutorFactory


def _build_test_settings() -> Settings:
    """Construct base Settings object for tests."""
    return Settings(
        config_file="example.toml",
        host="127.0.0.1",
        port=9898,
        flask_env="testing",
        log_level="DEBUG",
        graceful_shutdown_timeout=5,
        waitress_threads=1,
        histogram_buckets=[1.0, 10.0, 100.0],
    )


def _build_test_configuration() -> Configuration:
    """Two databases with one metric each, both collected hourly."""
    return Configuration(
        title="Test Jikji Config",
        databases=(
            Database(
                driver=Driver.POSTGRES,
                hostname="db1",
                port=5432,
                username="postgres",
                password="secret",
                database="hubspot",
                metrics=(
                    MetricSpec(
                        name="jobs.delayed",
                        kind="counter",
                        frequency="1h",
                        query="SELECT count(*) FROM jobs WHERE delayed",
                    ),
                ),
            ),
            Database(
                driver=Driver.MYSQL,
                hostname="db2",
                database="shop",
                metrics=(
                    MetricSpec(
                        name="orders.open",
                        frequency="1h",
                        query="SELECT count(*) FROM orders WHERE open",
                        help="Orders that are not shipped yet",
                    ),
                ),
            ),
        ),
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return _build_test_settings()


@pytest.fixture
def test_configuration() -> Configuration:
    """Create the test databases and metrics."""
    return _build_test_configuration()


@pytest.fixture
def registry() -> MetricRegistry:
    return MetricRegistry(buckets=[1.0, 10.0, 100.0])


@pytest.fixture
def executors() -> dict[str, StubExecutor]:
    """Stub executors keyed by database name."""
    return {
        "hubspot": StubExecutor(default=(42,)),
        "shop": StubExecutor(default=(7,)),
    }


@pytest.fixture
def executor_factory(executors: dict[str, StubExecutor]) -> StubExecutorFactory:
    return StubExecutorFactory(executors)


@pytest.fixture
def app(
    test_settings: Settings,
    test_configuration: Configuration,
    executor_factory: StubExecutorFactory,
) -> Generator[Flask, None, None]:
    """Create Flask app for testing; the scheduler is built but not started."""
    application = create_app(
        test_settings,
        configuration=test_configuration,
        skip_background_services=True,
        executor_factory=executor_factory,
    )

    try:
        yield application
    finally:
        application.container.scheduler().shutdown(grace_period=0)


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()
