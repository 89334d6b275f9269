"""Fan-out/fan-in execution of tail jobs on a bounded thread pool."""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Sequence

from .exceptions import TailError
from .tailer import LogTailer, TailJob, TailResult

logger = logging.getLogger(__name__)


class TailCoordinator:
    """Runs one tailer per file and waits for all of them.

    Each call to ``run`` uses its own executor, so no task outlives the call.
    A failing job never cancels its siblings; its failure comes back as a
    TailResult like any other outcome.

    Example:
        coordinator = TailCoordinator(max_workers=4)
        results = coordinator.run(jobs)
        failed = [r for r in results if not r.success]
    """

    def __init__(self, max_workers: int = 5, tailer: LogTailer | None = None) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers
        self.tailer = tailer or LogTailer()

    def _run_one(self, job: TailJob) -> TailResult:
        try:
            return self.tailer.tail(job)
        except Exception as e:
            logger.exception(
                f"Unexpected error tailing {job.file_path} for log {job.log_name}"
            )
            error = TailError(str(e), log_name=job.log_name, file_path=str(job.file_path))
            error.__cause__ = e
            return TailResult(job=job, success=False, end_position=job.start_position, error=error)

    def run(self, jobs: Sequence[TailJob]) -> list[TailResult]:
        """Execute ``jobs`` concurrently and block until every one has finished.

        Args:
            jobs: Tail jobs to execute.

        Returns:
            One result per job, in the order the jobs were given.
        """
        if not jobs:
            return []

        workers = min(self.max_workers, len(jobs))
        logger.debug(f"Dispatching {len(jobs)} tail jobs on {workers} workers")
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="logmonitor-tail"
        ) as executor:
            futures = [executor.submit(self._run_one, job) for job in jobs]
            concurrent.futures.wait(futures)

        results = [future.result() for future in futures]
        failures = sum(1 for r in results if not r.success)
        if failures:
            logger.warning(f"{failures} of {len(results)} tail jobs failed")
        return results
