"""Incremental tailing of a single log file.

A tailer reads complete lines from a stored byte offset to the end of the
file, counts pattern matches and merges the counts into the shared
``LogMetrics`` once the read has finished.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import TailError
from .logging_manager import LogContextAdapter
from .metrics import LogMetrics, matches_key, occurrences_key
from .models import FILESIZE_METRIC_NAME, METRIC_PATH_SEPARATOR, OCCURRENCES, FilePointer
from .patterns import SearchPattern
from .resolver import file_creation_millis

logger = logging.getLogger(__name__)


@dataclass
class TailJob:
    """Everything a tailer needs to process one file.

    Attributes:
        log_name: Display name of the log configuration.
        logical_path: Cursor store key of the log configuration.
        file_path: Concrete file to read.
        start_position: Byte offset to start reading from.
        patterns: Compiled search patterns.
        metrics: Metrics sink shared with the other tailers of the same log.
        report_file_size: Emit the file-size metric (only the active file does).
    """

    log_name: str
    logical_path: str
    file_path: Path
    start_position: int
    patterns: list[SearchPattern]
    metrics: LogMetrics
    report_file_size: bool = True


@dataclass
class TailResult:
    """Outcome of a tail job: success with the offset reached, or failure with its reason."""

    job: TailJob
    success: bool
    end_position: int = 0
    lines_read: int = 0
    file_creation_time: int = 0
    error: Exception | None = field(default=None)


class LogTailer:
    """Reads a log file from a byte offset and classifies each new line."""

    def tail(self, job: TailJob) -> TailResult:
        """Process ``job`` and merge its results into ``job.metrics``.

        I/O errors are caught and returned as a failed result; nothing is
        merged for a failed file so it is retried from the same offset.
        """
        log = LogContextAdapter(logger, {"log_name": job.log_name, "file_path": str(job.file_path)})
        log.info(f"Processing log file [{job.file_path}], starting from [{job.start_position}]")

        counts: Counter[tuple[str, str]] = Counter()
        lines_read = 0
        try:
            with job.file_path.open("rb") as f:
                f.seek(job.start_position)
                position = job.start_position
                while True:
                    raw = f.readline()
                    if not raw.endswith(b"\n"):
                        # EOF, or a line still being written
                        break
                    position += len(raw)
                    lines_read += 1
                    line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                    self._count_matches(job, line, counts)
                stat = os.fstat(f.fileno())
            creation_time = file_creation_millis(job.file_path)
        except OSError as e:
            log.error(f"Error encountered while processing log file {job.file_path}: {e}")
            error = TailError(
                f"Failed to tail {job.file_path} for log {job.log_name}: {e}",
                log_name=job.log_name,
                file_path=str(job.file_path),
            )
            error.__cause__ = e
            return TailResult(job=job, success=False, end_position=job.start_position, error=error)

        self._merge(job, counts, stat.st_size)
        job.metrics.update_file_pointer(
            FilePointer(
                logical_path=job.logical_path,
                filename=str(job.file_path),
                last_read_position=position,
                file_creation_time=creation_time,
                file_inode=stat.st_ino,
                file_device=stat.st_dev,
            )
        )
        log.info(
            f"Successfully processed log file [{job.file_path}]: {lines_read} lines, "
            f"offset {job.start_position} -> {position}"
        )
        return TailResult(
            job=job,
            success=True,
            end_position=position,
            lines_read=lines_read,
            file_creation_time=creation_time,
        )

    def _count_matches(
        self, job: TailJob, line: str, counts: Counter[tuple[str, str]]
    ) -> None:
        for pattern in job.patterns:
            for matched in pattern.find_all(line):
                counts[(occurrences_key(job.log_name, pattern.display_name), OCCURRENCES)] += 1
                if pattern.print_matched_string:
                    fragment = pattern.metric_fragment(matched)
                    if fragment:
                        key = matches_key(job.log_name, pattern.display_name, fragment)
                        counts[(key, fragment)] += 1

    def _merge(self, job: TailJob, counts: Counter[tuple[str, str]], file_size: int) -> None:
        metrics = job.metrics
        # Unmatched patterns still report zero occurrences.
        for pattern in job.patterns:
            metrics.ensure(occurrences_key(job.log_name, pattern.display_name), OCCURRENCES)
        for (key, name), count in counts.items():
            metrics.increment(key, count, name)
        if job.report_file_size:
            metrics.add(
                f"{job.log_name}{METRIC_PATH_SEPARATOR}{FILESIZE_METRIC_NAME}",
                file_size,
                FILESIZE_METRIC_NAME,
            )
