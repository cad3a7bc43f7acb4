"""A job binds one metric definition to the database it is collected from."""

import datetime
import logging
import math
import threading
import time
from collections.abc import Sequence
from decimal import Decimal
from enum import Enum
from typing import Any

from jikji.collection.executor import QueryExecutor
from jikji.collection.registry import MetricRegistry
from jikji.exceptions import ExecutionError, QueryError
from jikji.models.config import Database, MetricKind, MetricSpec

logger = logging.getLogger(__name__)

# How often a job waiting for its database slot checks for shutdown
_SLOT_POLL_INTERVAL = 0.25


class JobOutcome(str, Enum):
    """Result of a single tick."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISCARDED = "discarded"


class JobHealth(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


def convert_result(result: Any, kind: MetricKind) -> float:
    """Turn a scalar or row returned by an executor into a metric value.

    Rows contribute their first column. Dates and datetimes become epoch
    seconds.

    Raises:
        QueryError: If the value is missing, not numeric, or negative for
            a counter.
    """
    value = result
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        if len(value) == 0:
            raise QueryError("Query returned an empty row")
        value = value[0]

    if value is None:
        raise QueryError("Query returned NULL")

    if isinstance(value, datetime.datetime):
        number = value.timestamp()
    elif isinstance(value, datetime.date):
        number = datetime.datetime.combine(value, datetime.time()).timestamp()
    elif isinstance(value, (bool, int, float, Decimal)):
        number = float(value)
    else:
        raise QueryError(f"Query returned non-numeric value {value!r}")

    if math.isnan(number):
        raise QueryError("Query returned NaN")

    if kind == MetricKind.COUNTER and number < 0:
        raise QueryError(f"Counter value must not be negative, got {number}")

    return number


class Job:
    """Recurring unit of work for one metric on one database.

    A job never runs concurrently with itself: ``run_once`` takes a
    non-blocking in-flight lock and skips the tick when it is held. Jobs
    sharing a database also share ``slot``, which bounds how many of them
    may use the executor at once.
    """

    def __init__(
        self,
        spec: MetricSpec,
        database: Database,
        period: int,
        executor: QueryExecutor,
        registry: MetricRegistry,
        slot: threading.Semaphore,
        stopping: threading.Event | None = None,
        discard: threading.Event | None = None,
    ):
        self.spec = spec
        self.database = database
        self.period = period
        self.executor = executor
        self.registry = registry
        self.slot = slot
        self._stopping = stopping or threading.Event()
        self._discard = discard or threading.Event()
        self._in_flight = threading.Lock()
        self.health = JobHealth.HEALTHY
        self.runs = 0

        registry.register(spec.name, spec.kind, help=spec.help, labels=database.labels)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def run_once(self) -> JobOutcome:
        """Run the job's query once and record the result."""
        if not self._in_flight.acquire(blocking=False):
            return self.defer()

        try:
            if not self._acquire_slot():
                logger.info(f"Not starting {self.name}: shutdown in progress")
                return JobOutcome.SKIPPED
            try:
                return self._execute()
            finally:
                self.slot.release()
        finally:
            self._in_flight.release()

    def defer(self) -> JobOutcome:
        """Skip a tick because the previous run has not finished."""
        logger.info(
            f"Deferred tick for {self.name}: previous run on "
            f"{self.database.identity} still in progress"
        )
        self.registry.record_skip(self.name)
        return JobOutcome.SKIPPED

    def _acquire_slot(self) -> bool:
        while not self.slot.acquire(timeout=_SLOT_POLL_INTERVAL):
            if self._stopping.is_set():
                return False
        if self._stopping.is_set():
            self.slot.release()
            return False
        return True

    def _execute(self) -> JobOutcome:
        self.runs += 1
        start_time = time.perf_counter()
        error: str | None = None

        try:
            result = self.executor.run(self.spec.query)
            value = convert_result(result, self.spec.kind)
        except ExecutionError as e:
            error = e.message
            logger.warning(
                f"Collecting {self.name} from {self.database.identity} failed "
                f"[{e.error_code}]: {e.message}"
            )
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(
                f"Unexpected error collecting {self.name} from {self.database.identity}",
                exc_info=True,
            )

        duration = time.perf_counter() - start_time

        if self._discard.is_set():
            logger.warning(
                f"Discarding result of {self.name} that finished after the "
                f"shutdown deadline ({duration:.2f}s)"
            )
            return JobOutcome.DISCARDED

        if error is not None:
            self.registry.record_failure(self.name, error)
            self._set_health(JobHealth.DEGRADED)
            return JobOutcome.FAILED

        self.registry.update(self.name, value)
        self._set_health(JobHealth.HEALTHY)
        logger.debug(f"Collected {self.name}={value} in {duration:.3f}s")
        return JobOutcome.SUCCESS

    def _set_health(self, health: JobHealth) -> None:
        if health == self.health:
            return
        self.health = health
        if health == JobHealth.DEGRADED:
            logger.warning(f"Metric {self.name} is degraded")
        else:
            logger.info(f"Metric {self.name} recovered")
