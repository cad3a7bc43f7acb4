"""Command line entry points: serve the exporter or check a configuration."""

import argparse
import logging
import os
import sys
import threading
from pathlib import Path
from typing import NoReturn

from dotenv import load_dotenv
from paste.translogger import TransLogger  # type: ignore[import-untyped]
from waitress import serve as waitress_serve

from jikji.config import Settings
from jikji.exceptions import ConfigurationError
from jikji.utils.lifecycle_coordinator import LifecycleEvent

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jikji",
        description="Export the results of scheduled SQL queries as Prometheus metrics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Start collecting and serve /metrics")

    check_parser = subparsers.add_parser(
        "check-config",
        help="Validate a configuration file",
    )
    check_parser.add_argument("path", nargs="?", help="TOML file (default: CONFIG_FILE)")
    check_parser.add_argument(
        "--run-once",
        action="store_true",
        help="Also run every query once and print the results",
    )

    return parser


def serve(settings: Settings | None = None) -> None:
    """Run the exporter until SIGTERM/SIGINT completes a graceful shutdown."""
    if settings is None:
        settings = Settings.load()

    configure_logging(settings.log_level)

    from jikji import create_app

    try:
        app = create_app(settings)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    lifecycle_coordinator = app.container.lifecycle_coordinator()

    if settings.is_development:
        app.logger.info("Running in debug mode")

        # Only install signal handlers in the reloader's worker process
        if os.environ.get("WERKZEUG_RUN_MAIN") == "true":
            lifecycle_coordinator.initialize()

        def signal_shutdown(lifecycle_event: LifecycleEvent) -> None:
            if lifecycle_event == LifecycleEvent.AFTER_SHUTDOWN:
                # sys.exit doesn't work with the reloader
                os._exit(0)

        lifecycle_coordinator.register_lifecycle_notification(signal_shutdown)
        app.run(host=settings.host, port=settings.port, debug=True)
        return

    lifecycle_coordinator.initialize()

    def runner() -> None:
        wsgi = TransLogger(app, setup_console_handler=False)
        wsgi.logger.info(f"Using Waitress WSGI server with {settings.waitress_threads} threads")
        waitress_serve(wsgi, host=settings.host, port=settings.port, threads=settings.waitress_threads)

    # Server runs in a daemon thread so the lifecycle coordinator controls exit
    thread = threading.Thread(target=runner, daemon=True)
    thread.start()
    logger.info(f"Listening on http://{settings.host}:{settings.port}")

    event = threading.Event()

    def signal_shutdown_prod(lifecycle_event: LifecycleEvent) -> None:
        if lifecycle_event == LifecycleEvent.AFTER_SHUTDOWN:
            event.set()

    lifecycle_coordinator.register_lifecycle_notification(signal_shutdown_prod)
    event.wait()


def handle_check_config(path: Path, run_once: bool = False) -> int:
    """Validate ``path``; optionally run each job once. Returns an exit code."""
    from jikji.collection.scheduler import Scheduler
    from jikji.services.config_loader import load_configuration

    try:
        configuration = load_configuration(path)
        scheduler = Scheduler(configuration)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        return 1

    print(f"Configuration {configuration.title!r} is valid")
    for name, job in scheduler.jobs.items():
        print(f"  {name} ({job.spec.kind.value}) every {job.period}s on {job.database.identity}")

    failed = 0
    try:
        if run_once:
            for name in scheduler.jobs:
                outcome = scheduler.tick(name)
                value = scheduler.registry.get(name)
                if value.has_succeeded:
                    print(f"  {name} = {value.value}")
                else:
                    failed += 1
                    print(f"  {name} {outcome.value}: {value.last_error}", file=sys.stderr)
    finally:
        scheduler.shutdown(grace_period=0)

    return 1 if failed else 0


def main() -> NoReturn:
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = Settings.load()

    if args.command == "serve":
        serve(settings)
        sys.exit(0)

    configure_logging("WARNING")
    path = Path(args.path) if args.path else settings.config_file
    sys.exit(handle_check_config(path, run_once=args.run_once))


if __name__ == "__main__":
    main()
