"""Thread-safe metric aggregation for a single monitor run."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from .models import (
    DEFAULT_METRIC_PREFIX,
    MATCHES,
    METRIC_PATH_SEPARATOR,
    OCCURRENCES,
    SEARCH_STRING,
    FilePointer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Metric:
    """A single reported value.

    Attributes:
        name: Leaf name of the metric.
        value: String-encoded integer value.
        metric_path: Fully qualified path including the metric prefix.
    """

    name: str
    value: str
    metric_path: str


def occurrences_key(log_name: str, pattern_name: str) -> str:
    return METRIC_PATH_SEPARATOR.join((log_name, SEARCH_STRING, pattern_name, OCCURRENCES))


def matches_key(log_name: str, pattern_name: str, fragment: str) -> str:
    return METRIC_PATH_SEPARATOR.join((log_name, SEARCH_STRING, pattern_name, MATCHES, fragment))


class LogMetrics:
    """Path-keyed metrics shared by every tailer of one log configuration.

    Keys are paths relative to ``metric_prefix``; each Metric carries the fully
    qualified path. A key maps to exactly one Metric: ``add`` replaces and
    ``increment`` adds to the stored value.

    Thread Safety:
        - All public methods are thread-safe
        - Read accessors return copies, never the live mapping

    Example:
        metrics = LogMetrics("Custom Metrics/LogMonitor")
        metrics.increment("app.log/SearchString/Error/Occurrences")
        metrics.to_flat_dict()
        # {"Custom Metrics/LogMonitor/app.log/SearchString/Error/Occurrences": "1"}
    """

    def __init__(self, metric_prefix: str = DEFAULT_METRIC_PREFIX) -> None:
        self.metric_prefix = metric_prefix.rstrip(METRIC_PATH_SEPARATOR)
        self._metrics: dict[str, Metric] = {}
        self._file_pointers: dict[str, FilePointer] = {}
        self._lock = threading.Lock()

    def _full_path(self, key: str) -> str:
        if not self.metric_prefix:
            return key
        return f"{self.metric_prefix}{METRIC_PATH_SEPARATOR}{key}"

    def _make_metric(self, key: str, value: int | str, name: str | None) -> Metric:
        leaf = name or key.rsplit(METRIC_PATH_SEPARATOR, 1)[-1]
        return Metric(name=leaf, value=str(value), metric_path=self._full_path(key))

    def add(self, key: str, value: int | str, name: str | None = None) -> Metric:
        """Create or replace the metric stored under ``key``."""
        metric = self._make_metric(key, value, name)
        with self._lock:
            self._metrics[key] = metric
        return metric

    def increment(self, key: str, amount: int = 1, name: str | None = None) -> Metric:
        """Add ``amount`` to the metric under ``key``, creating it at zero first."""
        with self._lock:
            current = self._metrics.get(key)
            base = int(current.value) if current is not None else 0
            metric = self._make_metric(key, base + amount, name or (current.name if current else None))
            self._metrics[key] = metric
        return metric

    def ensure(self, key: str, name: str | None = None) -> Metric:
        """Return the metric under ``key``, creating it with value 0 if absent."""
        with self._lock:
            metric = self._metrics.get(key)
            if metric is None:
                metric = self._make_metric(key, 0, name)
                self._metrics[key] = metric
        return metric

    def get(self, key: str) -> Metric | None:
        with self._lock:
            return self._metrics.get(key)

    def get_value(self, key: str) -> int | None:
        metric = self.get(key)
        return int(metric.value) if metric is not None else None

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._metrics

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)

    @property
    def metrics(self) -> dict[str, Metric]:
        """Snapshot of all metrics keyed by relative path."""
        with self._lock:
            return dict(self._metrics)

    def update_file_pointer(self, pointer: FilePointer) -> None:
        """Record the cursor reached by a tailer, keyed by its filename."""
        with self._lock:
            self._file_pointers[pointer.filename] = pointer
        logger.debug(
            f"Recorded pointer for {pointer.filename} at offset {pointer.last_read_position}"
        )

    @property
    def file_pointers(self) -> list[FilePointer]:
        with self._lock:
            return list(self._file_pointers.values())

    def to_flat_dict(self) -> dict[str, str]:
        """Fully qualified metric path mapped to its string value."""
        with self._lock:
            return {m.metric_path: m.value for m in self._metrics.values()}

    def to_tree(self) -> dict[str, Any]:
        """Nested mapping of path segments; leaves are string values.

        The tree is a fresh copy and safe to hand to a reporter.
        """
        tree: dict[str, Any] = {}
        for path, value in self.to_flat_dict().items():
            node = tree
            *parents, leaf = path.split(METRIC_PATH_SEPARATOR)
            for segment in parents:
                child = node.setdefault(segment, {})
                if not isinstance(child, dict):
                    # A value already sits where a branch is needed; keep the value under "".
                    child = node[segment] = {"": child}
                node = child
            if isinstance(node.get(leaf), dict):
                node[leaf][""] = value
            else:
                node[leaf] = value
        return tree
