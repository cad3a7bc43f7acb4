"""Scheduler that drives every collection job on its own cadence."""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, wait
from enum import Enum
from typing import TYPE_CHECKING

from jikji.collection.executor import QueryExecutor, build_executor
from jikji.collection.frequency import parse_frequency
from jikji.collection.job import Job, JobOutcome
from jikji.collection.registry import BUILTIN_PREFIX, MetricRegistry, exported_names
from jikji.exceptions import ConfigurationError
from jikji.models.config import Configuration, Database, MetricKind
from jikji.utils.lifecycle_coordinator import (
    SHUTDOWN_DURATION_METRIC,
    SHUTTING_DOWN_METRIC,
    LifecycleEvent,
)

if TYPE_CHECKING:
    from jikji.utils.lifecycle_coordinator import LifecycleCoordinatorProtocol

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[Database], QueryExecutor]

# Process-level series registered next to the collected metrics
_RESERVED_NAMES = frozenset(
    {SHUTTING_DOWN_METRIC, f"{SHUTDOWN_DURATION_METRIC}_created"}
    | exported_names(SHUTDOWN_DURATION_METRIC, MetricKind.HISTOGRAM)
)


def _is_reserved(name: str) -> bool:
    return (
        name == BUILTIN_PREFIX
        or name.startswith(f"{BUILTIN_PREFIX}_")
        or name in _RESERVED_NAMES
    )


class SchedulerState(str, Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting-down"
    STOPPED = "stopped"


class Scheduler:
    """Owns the collection jobs and runs each one on its own timer.

    Construction validates the whole configuration and builds every job,
    or raises ``ConfigurationError`` without building any. Each job gets
    a timer thread that runs each tick on a daemon worker thread, so a
    slow query only ever delays its own job and an abandoned one never
    keeps the process alive.
    """

    def __init__(
        self,
        configuration: Configuration,
        registry: MetricRegistry | None = None,
        executor_factory: ExecutorFactory = build_executor,
        lifecycle_coordinator: "LifecycleCoordinatorProtocol | None" = None,
    ):
        self.configuration = configuration
        self.registry = registry if registry is not None else MetricRegistry()
        self.state = SchedulerState.INITIALIZING
        self._state_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._discard_event = threading.Event()
        self._timers: list[threading.Thread] = []
        self._futures: set[Future] = set()
        self._futures_lock = threading.Lock()

        periods = self._validate(configuration)
        self.executors = self._build_executors(configuration, executor_factory)

        self.jobs: dict[str, Job] = {}
        for database, executor in zip(configuration.databases, self.executors):
            slot = threading.BoundedSemaphore(max(1, executor.max_concurrency))
            for spec in database.metrics:
                self.jobs[spec.name] = Job(
                    spec=spec,
                    database=database,
                    period=periods[spec.name],
                    executor=executor,
                    registry=self.registry,
                    slot=slot,
                    stopping=self._stop_event,
                    discard=self._discard_event,
                )

        if lifecycle_coordinator is not None:
            lifecycle_coordinator.register_lifecycle_notification(self._on_lifecycle_event)
            lifecycle_coordinator.register_shutdown_waiter(
                "Scheduler", self.wait_for_in_flight
            )

        logger.info(
            f"Scheduler initialized: {len(self.jobs)} jobs across "
            f"{len(configuration.databases)} databases"
        )

    @staticmethod
    def _validate(configuration: Configuration) -> dict[str, int]:
        """Parse every frequency and check names, collecting all problems."""
        errors: list[str] = []
        periods: dict[str, int] = {}
        seen: set[str] = set()
        # Encoded family/sample name -> metric that claimed it
        claimed: dict[str, str] = {}

        for database in configuration.databases:
            for spec in database.metrics:
                if spec.name in seen:
                    errors.append(f"Duplicate metric name {spec.name!r}")
                    continue
                seen.add(spec.name)

                names = exported_names(spec.name, spec.kind)
                reserved = sorted(name for name in names if _is_reserved(name))
                if reserved:
                    errors.append(
                        f"Metric {spec.name!r} exports as {reserved[0]!r}, "
                        "which is reserved for the exporter's own metrics"
                    )
                    continue

                clashes = sorted(names & claimed.keys())
                if clashes:
                    errors.append(
                        f"Metric names {claimed[clashes[0]]!r} and {spec.name!r} "
                        f"both export as {clashes[0]!r}"
                    )
                    continue
                claimed.update(dict.fromkeys(names, spec.name))

                try:
                    periods[spec.name] = parse_frequency(spec.frequency)
                except ConfigurationError as e:
                    errors.append(f"Metric {spec.name!r}: {e}")

        if errors:
            raise ConfigurationError.from_errors(errors)
        return periods

    @staticmethod
    def _build_executors(
        configuration: Configuration, executor_factory: ExecutorFactory
    ) -> list[QueryExecutor]:
        errors: list[str] = []
        executors: list[QueryExecutor] = []

        for database in configuration.databases:
            try:
                executors.append(executor_factory(database))
            except ConfigurationError as e:
                errors.append(f"Database {database.identity}: {e}")

        if errors:
            for executor in executors:
                executor.close()
            raise ConfigurationError.from_errors(errors)
        return executors

    def start(self) -> None:
        """Start one timer per job. The first tick of every job fires immediately."""
        with self._state_lock:
            if self.state != SchedulerState.INITIALIZING:
                logger.warning(f"Scheduler cannot start from state {self.state.value}")
                return

            self.state = SchedulerState.RUNNING
            for job in self.jobs.values():
                timer = threading.Thread(
                    target=self._timer_loop,
                    args=(job,),
                    daemon=True,
                    name=f"jikji-timer-{job.name}",
                )
                self._timers.append(timer)
                timer.start()

        logger.info(f"Scheduler started {len(self._timers)} job timers")

    def tick(self, name: str) -> JobOutcome:
        """Run the named job once in the calling thread."""
        return self.jobs[name].run_once()

    def _timer_loop(self, job: Job) -> None:
        next_run = time.monotonic()
        while not self._stop_event.is_set():
            delay = next_run - time.monotonic()
            if delay > 0 and self._stop_event.wait(delay):
                break

            self._submit(job)

            # Fixed rate; missed ticks are dropped, not caught up
            next_run += job.period
            now = time.monotonic()
            if next_run <= now:
                missed = int((now - next_run) // job.period) + 1
                next_run += missed * job.period

    def _submit(self, job: Job) -> None:
        if job.in_flight:
            job.defer()
            return

        with self._state_lock:
            if self.state != SchedulerState.RUNNING or self._stop_event.is_set():
                return

            future: Future = Future()
            future.set_running_or_notify_cancel()
            # Daemon, so a query abandoned at shutdown never holds up process exit
            worker = threading.Thread(
                target=self._run_job,
                args=(job, future),
                daemon=True,
                name=f"jikji-job-{job.name}",
            )
            with self._futures_lock:
                self._futures.add(future)
            future.add_done_callback(self._forget_future)
            worker.start()

    def _run_job(self, job: Job, future: Future) -> None:
        try:
            outcome = job.run_once()
        except Exception:
            # run_once handles executor errors itself; this guards the registry calls
            logger.error(f"Job {job.name} crashed", exc_info=True)
            outcome = JobOutcome.FAILED
        future.set_result(outcome)

    def _forget_future(self, future: Future) -> None:
        with self._futures_lock:
            self._futures.discard(future)

    def stop_ticks(self) -> None:
        """Stop issuing new ticks. Running executions continue."""
        with self._state_lock:
            if self.state in (SchedulerState.SHUTTING_DOWN, SchedulerState.STOPPED):
                return
            self.state = SchedulerState.SHUTTING_DOWN
            self._stop_event.set()

        logger.info(f"Scheduler shutdown initiated with {self.in_flight_count()} jobs in flight")

    def wait_for_in_flight(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for running executions to finish."""
        with self._futures_lock:
            pending = set(self._futures)

        if not pending:
            logger.info("No in-flight jobs to wait for")
            return True

        logger.info(f"Waiting for {len(pending)} in-flight jobs (timeout: {timeout:.1f}s)")
        _, not_done = wait(pending, timeout=max(0.0, timeout))

        if not_done:
            logger.warning(f"Timeout waiting for jobs, {len(not_done)} still running")
            return False

        logger.info("All in-flight jobs completed")
        return True

    def finalize(self) -> None:
        """Abandon unfinished executions and release resources."""
        with self._state_lock:
            if self.state == SchedulerState.STOPPED:
                return
            self._stop_event.set()
            self._discard_event.set()
            self.state = SchedulerState.STOPPED

        for timer in self._timers:
            timer.join(timeout=1.0)

        for executor in self.executors:
            try:
                executor.close()
            except Exception as e:
                logger.error(f"Error closing executor: {e}")

        logger.info("Scheduler stopped")

    def shutdown(self, grace_period: float) -> bool:
        """Stop the scheduler, giving in-flight jobs ``grace_period`` seconds.

        Returns:
            True if every in-flight execution finished within the grace period.
        """
        self.stop_ticks()
        completed = self.wait_for_in_flight(grace_period)
        self.finalize()
        return completed

    def in_flight_count(self) -> int:
        return sum(1 for job in self.jobs.values() if job.in_flight)

    def job_health(self) -> dict[str, str]:
        """Current health of every job, keyed by metric name."""
        return {name: job.health.value for name, job in self.jobs.items()}

    def _on_lifecycle_event(self, event: LifecycleEvent) -> None:
        match event:
            case LifecycleEvent.PREPARE_SHUTDOWN:
                self.stop_ticks()
            case LifecycleEvent.SHUTDOWN:
                self.finalize()
