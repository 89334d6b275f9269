"""Run orchestration: resolve files, dispatch tailers, persist cursors.

``LogMonitor`` is the entry point an external scheduler calls once per
interval. Each call processes only data appended since the previous call.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .config import LogConfig, MonitorConfig
from .coordinator import TailCoordinator
from .cursor_store import CursorStore
from .exceptions import ConfigurationError, FileResolutionError, LogMonitorError, PersistenceError
from .logging_manager import LogContextAdapter
from .metrics import LogMetrics
from .models import FilePointer
from .patterns import SearchPattern, compile_search_patterns
from .resolver import (
    find_active_file,
    find_file_by_identity,
    find_files_modified_since,
    resolve_directory,
    stat_file,
)
from .tailer import TailJob, TailResult

logger = logging.getLogger(__name__)


def _resume_offset(pointer: FilePointer, file_size: int) -> int:
    """Stored offset, or 0 if the file is now shorter than it."""
    if file_size < pointer.last_read_position:
        return 0
    return pointer.last_read_position


@dataclass
class RunReport:
    """Outcome of a run over every configured log.

    Attributes:
        metrics: Metrics per log display name, for logs that could be processed.
        errors: Configuration or resolution error per log display name.
        results: Every tail result of the run.
        persistence_error: Set when the cursor store could not be saved.
    """

    metrics: dict[str, LogMetrics] = field(default_factory=dict)
    errors: dict[str, LogMonitorError] = field(default_factory=dict)
    results: list[TailResult] = field(default_factory=list)
    persistence_error: PersistenceError | None = None

    @property
    def failed_tails(self) -> list[TailResult]:
        return [r for r in self.results if not r.success]


@dataclass
class _PreparedLog:
    config: LogConfig
    active_file: Path
    metrics: LogMetrics
    jobs: list[TailJob]


class LogMonitor:
    """Tails every configured log once and returns the collected metrics.

    Runs for the same logical path must not overlap; scheduling them is the
    caller's responsibility.

    Example:
        monitor = LogMonitor(load_config("config.yml"))
        report = monitor.run()
        for name, metrics in report.metrics.items():
            reporter.send(metrics.to_flat_dict())
    """

    def __init__(
        self,
        config: MonitorConfig,
        cursor_store: CursorStore | None = None,
        coordinator: TailCoordinator | None = None,
    ):
        """Initialize the monitor.

        Args:
            config: Monitor configuration.
            cursor_store: Cursor store; defaults to one at ``config.file_pointer_path``.
            coordinator: Tail coordinator; defaults to ``config.number_of_threads`` workers.
        """
        self.config = config
        self.cursor_store = cursor_store or CursorStore(config.file_pointer_path)
        self.coordinator = coordinator or TailCoordinator(max_workers=config.number_of_threads)

    def _prepare(self, log_config: LogConfig) -> _PreparedLog:
        """Compile patterns, resolve the active file and build tail jobs.

        Raises:
            ConfigurationError: If a pattern or replacer is malformed.
            FileResolutionError: If the directory or file can't be resolved.
        """
        patterns = compile_search_patterns(log_config.search_strings, log_config.replacers)
        directory = resolve_directory(log_config.log_directory)
        active = find_active_file(directory, log_config.log_name)
        active_stat = stat_file(active)
        metrics = LogMetrics(self.config.metric_prefix)
        logical_path = log_config.logical_path

        jobs: list[TailJob] = []
        start = self.cursor_store.start_position(logical_path, active, active_stat.st_size)
        if log_config.process_rotated_files and self.cursor_store.has_pointer(logical_path):
            pointer = self.cursor_store.get_pointer(logical_path, active)
            if self._is_recorded_file(pointer, active, active_stat):
                # Same file, possibly renamed: keep its offset
                start = _resume_offset(pointer, active_stat.st_size)
            else:
                jobs.extend(
                    self._rotated_jobs(log_config, directory, active, pointer, patterns, metrics)
                )
                start = 0

        jobs.append(
            TailJob(
                log_name=log_config.display_name,
                logical_path=logical_path,
                file_path=active,
                start_position=start,
                patterns=patterns,
                metrics=metrics,
            )
        )
        return _PreparedLog(config=log_config, active_file=active, metrics=metrics, jobs=jobs)

    @staticmethod
    def _is_recorded_file(pointer: FilePointer, path: Path, stat: os.stat_result) -> bool:
        """Whether ``path`` is the file the pointer was recorded for.

        Records carrying an inode are matched by identity; older records fall
        back to the filename and the offset-reset rules.
        """
        if pointer.file_inode:
            return (pointer.file_inode, pointer.file_device) == (stat.st_ino, stat.st_dev)
        return pointer.filename == str(path) and stat.st_size >= pointer.last_read_position

    def _find_recorded_file(
        self, log_config: LogConfig, directory: Path, active: Path, pointer: FilePointer
    ) -> Path | None:
        if pointer.file_inode:
            recorded = find_file_by_identity(
                directory, log_config.log_name, pointer.file_inode, pointer.file_device
            )
        else:
            recorded = Path(pointer.filename)
            if not recorded.is_file():
                recorded = None
        if recorded is None or recorded == active:
            return None
        return recorded

    def _rotated_jobs(
        self,
        log_config: LogConfig,
        directory: Path,
        active: Path,
        pointer: FilePointer,
        patterns: list[SearchPattern],
        metrics: LogMetrics,
    ) -> list[TailJob]:
        """Jobs for the files rotated out since the last run.

        The previously read file resumes from the recorded offset; files
        written after it are read from the start.
        """
        recorded = self._find_recorded_file(log_config, directory, active, pointer)
        if recorded is None:
            logger.warning(
                f"Rollover detected for {log_config.display_name} but {pointer.filename} "
                f"is no longer present, reading {active} from the start"
            )
            return []

        recorded_stat = stat_file(recorded)
        later = [
            path
            for path in find_files_modified_since(
                directory, log_config.log_name, recorded_stat.st_mtime
            )
            if path not in (recorded, active)
        ]
        starts = {recorded: _resume_offset(pointer, recorded_stat.st_size)}
        starts.update((path, 0) for path in later)

        jobs = [
            TailJob(
                log_name=log_config.display_name,
                logical_path=log_config.logical_path,
                file_path=path,
                start_position=start,
                patterns=patterns,
                metrics=metrics,
                report_file_size=False,
            )
            for path, start in starts.items()
        ]
        logger.info(
            f"Rollover detected for {log_config.display_name}: "
            f"processing {len(jobs)} rotated files before {active}"
        )
        return jobs

    def _apply_pointers(self, prepared: _PreparedLog) -> None:
        for pointer in prepared.metrics.file_pointers:
            if pointer.filename != str(prepared.active_file):
                continue
            self.cursor_store.update_pointer(
                prepared.config.logical_path,
                pointer.filename,
                pointer.last_read_position,
                pointer.file_creation_time,
                inode=pointer.file_inode,
                device=pointer.file_device,
            )

    def _execute(self, prepared_logs: list[_PreparedLog]) -> list[TailResult]:
        jobs = [job for prepared in prepared_logs for job in prepared.jobs]
        results = self.coordinator.run(jobs)
        for prepared in prepared_logs:
            self._apply_pointers(prepared)
        return results

    def process_log(self, log_config: LogConfig) -> LogMetrics:
        """Tail a single log configuration.

        A file that fails to tail contributes no metrics and keeps its
        offset; the failure is logged. Use ``run()`` to get the per-file
        ``TailResult``s.

        Args:
            log_config: Log to process.

        Returns:
            Metrics collected for the log.

        Raises:
            ConfigurationError: If a pattern or replacer is malformed.
            FileResolutionError: If the directory or file can't be resolved.
            PersistenceError: If the cursor store can't be saved.
        """
        prepared = self._prepare(log_config)
        for result in self._execute([prepared]):
            if not result.success:
                logger.warning(
                    f"Metrics for {log_config.display_name} are incomplete, "
                    f"{result.job.file_path} was not processed: {result.error}"
                )
        self.cursor_store.flush()
        return prepared.metrics

    def run(self) -> RunReport:
        """Tail every configured log, isolating failures per log and per file."""
        report = RunReport()
        prepared_logs = []
        for log_config in self.config.logs:
            log = LogContextAdapter(logger, {"log_name": log_config.display_name})
            try:
                prepared_logs.append(self._prepare(log_config))
            except ConfigurationError as e:
                log.error(f"Invalid configuration for log {log_config.display_name}: {e}")
                report.errors[log_config.display_name] = e
            except FileResolutionError as e:
                log.error(
                    f"Unable to resolve {log_config.log_name} in {log_config.log_directory} "
                    f"for log {log_config.display_name}: {e}"
                )
                report.errors[log_config.display_name] = e

        report.results = self._execute(prepared_logs)
        for prepared in prepared_logs:
            report.metrics[prepared.config.display_name] = prepared.metrics

        try:
            self.cursor_store.flush()
        except PersistenceError as e:
            logger.error(f"Failed to persist file pointers: {e}")
            report.persistence_error = e

        logger.info(
            f"Log monitor run finished: {len(report.metrics)} logs processed, "
            f"{len(report.errors)} skipped, {len(report.failed_tails)} failed tails"
        )
        return report
