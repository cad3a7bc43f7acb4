"""Thread-safe store of the latest observed value for every metric.

Jobs are the only writers and each writes only its own entry. The
exporter is the reader. Entries are frozen ``MetricValue`` records that
writers replace wholesale, so ``snapshot()`` only needs to copy the dict
under the lock to get a consistent view, and a reader never sees a torn
update.
"""

import bisect
import logging
import math
import re
import threading
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from jikji.exceptions import DuplicateMetricName, UnknownMetricError
from jikji.models.config import MetricKind

logger = logging.getLogger(__name__)

# Same defaults as prometheus_client.Histogram
DEFAULT_BUCKETS: tuple[float, ...] = (
    0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0,
)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")

# Prefix of the series the exporter adds about itself (jikji_info, jikji_metric_up, ...)
BUILTIN_PREFIX = "jikji"


def exposition_name(name: str) -> str:
    """Prometheus-safe form of a metric name ('jobs.delayed' -> 'jobs_delayed')."""
    sanitized = _INVALID_NAME_CHARS.sub("_", name)
    if sanitized[:1].isdigit():
        sanitized = "_" + sanitized
    return sanitized


def exported_names(name: str, kind: MetricKind) -> set[str]:
    """Every family and sample name a metric occupies once encoded.

    prometheus_client renders a counter 'orders' as 'orders_total' (and
    strips a trailing '_total' from the family name), and a histogram as
    '_bucket', '_count' and '_sum' samples.
    """
    base = exposition_name(name)
    match MetricKind(kind):
        case MetricKind.COUNTER:
            base = base.removesuffix("_total")
            return {base, f"{base}_total"}
        case MetricKind.HISTOGRAM:
            return {base, f"{base}_bucket", f"{base}_count", f"{base}_sum"}
        case _:
            return {base}


@dataclass(frozen=True)
class MetricValue:
    """Latest known state of one metric."""

    name: str
    kind: MetricKind
    help: str = ""
    labels: Mapping[str, str] = field(default_factory=dict)
    value: float | None = None
    updated_at: float | None = None
    has_succeeded: bool = False
    last_attempt_failed: bool = False
    failures: int = 0
    consecutive_failures: int = 0
    skipped: int = 0
    last_error: str | None = None
    # Histogram state; bucket_counts holds non-cumulative counts per bound
    buckets: tuple[float, ...] = ()
    bucket_counts: tuple[int, ...] = ()
    sample_count: int = 0
    sample_sum: float = 0.0

    @property
    def healthy(self) -> bool:
        """True when the metric has a value and its last attempt succeeded."""
        return self.has_succeeded and not self.last_attempt_failed

    def cumulative_buckets(self) -> list[tuple[float, int]]:
        """Bucket bounds with cumulative counts, ending with +Inf."""
        result = []
        total = 0
        for bound, count in zip(self.buckets, self.bucket_counts):
            total += count
            result.append((bound, total))
        result.append((math.inf, self.sample_count))
        return result


class MetricRegistry:
    """Mapping from metric name to its current ``MetricValue``."""

    def __init__(self, buckets: Iterable[float] = DEFAULT_BUCKETS):
        self._buckets = tuple(sorted(float(b) for b in buckets if not math.isinf(b)))
        self._values: dict[str, MetricValue] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        kind: MetricKind,
        help: str = "",
        labels: Mapping[str, str] | None = None,
    ) -> None:
        """Reserve ``name`` for a metric of ``kind``.

        Registering the same name and kind again is a no-op.

        Raises:
            DuplicateMetricName: If ``name`` is already registered with
                a different kind.
        """
        kind = MetricKind(kind)
        with self._lock:
            existing = self._values.get(name)
            if existing is not None:
                if existing.kind != kind:
                    raise DuplicateMetricName(
                        name,
                        f"is already registered as {existing.kind.value}, "
                        f"cannot register it as {kind.value}",
                    )
                return

            value = MetricValue(
                name=name,
                kind=kind,
                help=help,
                labels=MappingProxyType(dict(labels or {})),
            )
            if kind == MetricKind.HISTOGRAM:
                value = replace(
                    value,
                    buckets=self._buckets,
                    bucket_counts=(0,) * len(self._buckets),
                )
            self._values[name] = value

        logger.debug(f"Registered metric {name} ({kind.value})")

    def update(self, name: str, value: float) -> MetricValue:
        """Store a successful observation for ``name``."""
        now = time.time()
        with self._lock:
            current = self._get(name)
            changes: dict = {
                "value": value,
                "updated_at": now,
                "has_succeeded": True,
                "last_attempt_failed": False,
                "consecutive_failures": 0,
                "last_error": None,
            }
            if current.kind == MetricKind.HISTOGRAM:
                counts = list(current.bucket_counts)
                index = bisect.bisect_left(current.buckets, value)
                if index < len(counts):
                    counts[index] += 1
                changes.update(
                    bucket_counts=tuple(counts),
                    sample_count=current.sample_count + 1,
                    sample_sum=current.sample_sum + value,
                )
            updated = replace(current, **changes)
            self._values[name] = updated
            return updated

    def record_failure(self, name: str, error: str | None = None) -> MetricValue:
        """Mark the latest attempt for ``name`` as failed.

        The last good value is kept so that scrapers keep seeing it until
        the next success.
        """
        with self._lock:
            current = self._get(name)
            updated = replace(
                current,
                last_attempt_failed=True,
                failures=current.failures + 1,
                consecutive_failures=current.consecutive_failures + 1,
                last_error=error,
            )
            self._values[name] = updated
            return updated

    def record_skip(self, name: str) -> MetricValue:
        """Count a tick that was skipped because the previous run was still going."""
        with self._lock:
            current = self._get(name)
            updated = replace(current, skipped=current.skipped + 1)
            self._values[name] = updated
            return updated

    def get(self, name: str) -> MetricValue:
        with self._lock:
            return self._get(name)

    def snapshot(self) -> Mapping[str, MetricValue]:
        """Return a read-only point-in-time copy of every entry."""
        with self._lock:
            copy = dict(self._values)
        return MappingProxyType(copy)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def _get(self, name: str) -> MetricValue:
        try:
            return self._values[name]
        except KeyError:
            raise UnknownMetricError(name) from None
