"""Scheduled collection engine: jobs, scheduler, registry and exporter."""

from jikji.collection.executor import QueryExecutor, SqlAlchemyExecutor, build_executor
from jikji.collection.exporter import SnapshotExporter
from jikji.collection.frequency import parse_frequency
from jikji.collection.job import Job, JobHealth, JobOutcome
from jikji.collection.registry import MetricRegistry, MetricValue
from jikji.collection.scheduler import Scheduler, SchedulerState

__all__ = [
    "Job",
    "JobHealth",
    "JobOutcome",
    "MetricRegistry",
    "MetricValue",
    "QueryExecutor",
    "Scheduler",
    "SchedulerState",
    "SnapshotExporter",
    "SqlAlchemyExecutor",
    "build_executor",
    "parse_frequency",
]
