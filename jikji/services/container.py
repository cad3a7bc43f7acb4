"""Dependency injection container for the exporter services."""

from dependency_injector import containers, providers
from prometheus_client import CollectorRegistry

from jikji.collection.executor import build_executor
from jikji.collection.exporter import SnapshotExporter
from jikji.collection.registry import MetricRegistry
from jikji.collection.scheduler import Scheduler
from jikji.config import Settings
from jikji.models.config import Configuration
from jikji.utils.lifecycle_coordinator import LifecycleCoordinator


class ServiceContainer(containers.DeclarativeContainer):
    """Exporter service container.

    ``config`` and ``configuration`` must be overridden before use. Every
    provider is a singleton scoped to this container instance, so two
    containers (for example in tests) never share registries.
    """

    # Process settings - must be overridden
    config = providers.Dependency(instance_of=Settings)

    # Databases and metrics - must be overridden
    configuration = providers.Dependency(instance_of=Configuration)

    # Prometheus collector registry for everything this process exposes
    collector_registry = providers.Singleton(CollectorRegistry)

    lifecycle_coordinator = providers.Singleton(
        LifecycleCoordinator,
        graceful_shutdown_timeout=config.provided.graceful_shutdown_timeout,
        registry=collector_registry,
    )

    metric_registry = providers.Singleton(
        MetricRegistry,
        buckets=config.provided.histogram_buckets,
    )

    # Callable building one executor per configured database; tests override it
    executor_factory = providers.Object(build_executor)

    scheduler = providers.Singleton(
        Scheduler,
        configuration=configuration,
        registry=metric_registry,
        executor_factory=executor_factory,
        lifecycle_coordinator=lifecycle_coordinator,
    )

    exporter = providers.Singleton(
        SnapshotExporter,
        registry=metric_registry,
        title=configuration.provided.title,
        collector_registry=collector_registry,
    )


def start_background_services(container: ServiceContainer) -> None:
    """Instantiate the scheduler and start collecting."""
    container.scheduler().start()
