"""Incremental log tailing with pattern-based metrics.

This package tails rotating log files from a persisted byte offset, counts
configured search patterns in the newly appended lines and aggregates the
counts into a hierarchical metric tree for an external reporter.

Key Components:
    - config: Typed configuration and the YAML loader
    - patterns: Search string and replacer compilation
    - cursor_store: Persistent per-file read positions with rotation policy
    - resolver: Directory and wildcard resolution
    - tailer: Reading one file and classifying its lines
    - coordinator: Running tailers concurrently behind a barrier
    - monitor: The run entry point

Example:
    >>> from logmonitor import LogMonitor, load_config
    >>> monitor = LogMonitor(load_config("config.yml"))
    >>> report = monitor.run()
    >>> report.metrics["app.log"].to_flat_dict()
"""

from __future__ import annotations

from .config import LogConfig, MonitorConfig, ReplacerRule, SearchString, load_config, parse_config
from .coordinator import TailCoordinator
from .cursor_store import CursorStore
from .exceptions import (
    ConfigurationError,
    FileAccessError,
    FileResolutionError,
    LogFileNotFoundError,
    LogMonitorError,
    PersistenceError,
    TailError,
)
from .logging_manager import LoggingManager
from .metrics import LogMetrics, Metric
from .models import FilePointer
from .monitor import LogMonitor, RunReport
from .patterns import SearchPattern, compile_search_patterns
from .tailer import LogTailer, TailJob, TailResult

__all__ = [
    "ConfigurationError",
    "CursorStore",
    "FileAccessError",
    "FilePointer",
    "FileResolutionError",
    "LogConfig",
    "LogFileNotFoundError",
    "LogMetrics",
    "LogMonitor",
    "LogMonitorError",
    "LogTailer",
    "LoggingManager",
    "Metric",
    "MonitorConfig",
    "PersistenceError",
    "ReplacerRule",
    "RunReport",
    "SearchPattern",
    "SearchString",
    "TailCoordinator",
    "TailError",
    "TailJob",
    "TailResult",
    "compile_search_patterns",
    "load_config",
    "parse_config",
]

__version__ = "0.1.0"
