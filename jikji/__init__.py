"""Flask application factory."""

import logging
from typing import TYPE_CHECKING

from dependency_injector import providers

from jikji.app import App
from jikji.config import Settings
from jikji.models.config import Configuration

if TYPE_CHECKING:
    from jikji.collection.scheduler import ExecutorFactory

logger = logging.getLogger(__name__)


def create_app(
    settings: "Settings | None" = None,
    configuration: "Configuration | None" = None,
    skip_background_services: bool = False,
    executor_factory: "ExecutorFactory | None" = None,
) -> App:
    """Create and configure the exporter's Flask application.

    Args:
        settings: Process settings (loaded from the environment if not provided)
        configuration: Databases and metrics (loaded from settings.config_file
            if not provided)
        skip_background_services: Build the scheduler but do not start it
            (for CLI/tests)
        executor_factory: Replaces the SQLAlchemy executors (for tests)

    Raises:
        ConfigurationError: If the settings or the configuration are invalid.
            Nothing is started in that case.
    """
    app = App(__name__)

    if settings is None:
        settings = Settings.load()

    settings.validate_process_config()

    if configuration is None:
        from jikji.services.config_loader import load_configuration

        configuration = load_configuration(settings.config_file)

    from jikji.services.container import ServiceContainer, start_background_services

    container = ServiceContainer()
    container.config.override(settings)
    container.configuration.override(configuration)
    if executor_factory is not None:
        container.executor_factory.override(providers.Object(executor_factory))

    container.wire(packages=["jikji.api"])

    app.container = container

    # Build every job up front so configuration errors surface before serving
    container.scheduler()
    container.exporter()

    from jikji.api.health import health_bp
    from jikji.api.metrics import metrics_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(metrics_bp)

    if not skip_background_services:
        start_background_services(container)
        container.lifecycle_coordinator().fire_startup()
        app.logger.info("Metric collection started")

    return app
