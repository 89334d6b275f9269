"""Persistent cursor storage for incremental log tailing.

This module keeps one FilePointer per logical log path in a JSON file guarded
by ``fcntl`` locks, so repeated runs resume where the previous one stopped.
"""

from __future__ import annotations

import fcntl
import json
import logging
import threading
from pathlib import Path
from typing import Any

from .exceptions import PersistenceError
from .models import FilePointer

logger = logging.getLogger(__name__)


class CursorStore:
    """Manages persisted read positions for log files.

    Pointers are loaded once at construction, updated in memory during a run
    and written back by ``flush``. A missing or corrupt state file is treated
    as "no prior pointers" so monitoring keeps running, at the cost of
    re-reading files from the start.

    Attributes:
        state_file: Path to the JSON file storing all pointers.
        _pointers: In-memory pointers keyed by logical path.
    """

    def __init__(self, state_file: str | Path = "/tmp/logmonitor/file_pointers.json"):
        """Initialize cursor store.

        Args:
            state_file: JSON file for storing pointers. Its directory is created.
        """
        self.state_file = Path(state_file)
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        self._pointers: dict[str, FilePointer] = {}
        self._lock = threading.Lock()

        self._load_pointers()

    def _read_state(self) -> dict[str, Any]:
        """Read the raw JSON mapping under a shared lock.

        Raises:
            PersistenceError: If the file can't be read or isn't a JSON object.
        """
        try:
            with self.state_file.open("r") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = json.load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Failed to parse pointer file {self.state_file}: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Failed to read pointer file {self.state_file}: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceError(f"Pointer file {self.state_file} does not hold a JSON object")
        return data

    def _load_pointers(self) -> None:
        if not self.state_file.exists():
            logger.info("Pointer state file does not exist, starting fresh")
            return

        try:
            data = self._read_state()
        except PersistenceError as e:
            logger.error(f"{e}, starting fresh")
            return

        for logical_path, record in data.items():
            try:
                self._pointers[logical_path] = FilePointer.from_record(logical_path, record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring malformed pointer for {logical_path}: {e}")
        logger.info(f"Loaded {len(self._pointers)} file pointers from {self.state_file}")

    def flush(self) -> None:
        """Write all pointers to disk.

        Writes a temporary file under an exclusive lock and atomically renames
        it over the state file, so an interrupted write never leaves a
        half-written store behind.

        Raises:
            PersistenceError: If the file can't be written.
        """
        with self._lock:
            data = {path: pointer.to_record() for path, pointer in self._pointers.items()}

        temp_file = self.state_file.with_suffix(".tmp")
        try:
            with temp_file.open("w") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    json.dump(data, f, indent=2)
                    f.flush()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            temp_file.replace(self.state_file)
        except OSError as e:
            raise PersistenceError(f"Failed to save pointers to {self.state_file}: {e}") from e
        logger.debug(f"Saved {len(data)} file pointers to {self.state_file}")

    def has_pointer(self, logical_path: str) -> bool:
        with self._lock:
            return logical_path in self._pointers

    def get_pointer(self, logical_path: str, resolved_path: str | Path) -> FilePointer:
        """Get the stored pointer for a logical path.

        Args:
            logical_path: Configured directory plus wildcard.
            resolved_path: File currently matched by the wildcard.

        Returns:
            The stored pointer, or a zero-value pointer naming ``resolved_path``.
        """
        with self._lock:
            pointer = self._pointers.get(logical_path)
        if pointer is None:
            return FilePointer(logical_path=logical_path, filename=str(resolved_path))
        return pointer

    def start_position(self, logical_path: str, resolved_path: str | Path, file_size: int) -> int:
        """Offset to resume from, after applying the rotation policy.

        The stored offset is discarded when the resolved file differs from the
        one recorded for this logical path, or when the file is now smaller
        than the stored offset (truncated or rotated in place).
        """
        pointer = self.get_pointer(logical_path, resolved_path)
        position = pointer.last_read_position

        if pointer.filename != str(resolved_path):
            logger.info(
                f"File for {logical_path} changed from {pointer.filename} to "
                f"{resolved_path}, resetting position to 0"
            )
            return 0
        if file_size < position:
            logger.info(
                f"Log {resolved_path} was rotated or truncated "
                f"(offset {position} > size {file_size}), resetting position to 0"
            )
            return 0
        return position

    def update_pointer(
        self,
        logical_path: str,
        resolved_path: str | Path,
        new_position: int,
        new_creation_time: int,
        inode: int = 0,
        device: int = 0,
    ) -> FilePointer:
        """Replace the stored pointer for a logical path.

        ``inode`` and ``device`` identify the file so it can still be found
        after being renamed by log rotation. The update is held in memory
        until ``flush``.
        """
        resolved = str(resolved_path)
        with self._lock:
            pointer = self._pointers.get(logical_path)
            if pointer is None or pointer.filename != resolved:
                pointer = FilePointer(logical_path=logical_path, filename=resolved)
                self._pointers[logical_path] = pointer
            pointer.file_creation_time = new_creation_time
            pointer.file_inode = inode
            pointer.file_device = device
        pointer.update_last_read_position(new_position)
        logger.debug(f"Updated pointer for {logical_path} to {resolved} at offset {new_position}")
        return pointer

    def remove_pointer(self, logical_path: str) -> None:
        """Forget a logical path so its next run starts from offset 0."""
        with self._lock:
            removed = self._pointers.pop(logical_path, None)
        if removed is not None:
            self.flush()
            logger.info(f"Removed pointer for {logical_path}")

    def get_all_pointers(self) -> list[FilePointer]:
        with self._lock:
            return list(self._pointers.values())
