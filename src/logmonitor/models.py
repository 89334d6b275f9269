"""Data models shared across the log monitor.

This module defines the persisted cursor record used to resume tailing and
the constants that shape metric paths.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

METRIC_PATH_SEPARATOR = "/"
SEARCH_STRING = "SearchString"
OCCURRENCES = "Occurrences"
MATCHES = "Matches"
FILESIZE_METRIC_NAME = "File size (Bytes)"
DEFAULT_METRIC_PREFIX = "Custom Metrics/LogMonitor"


@dataclass
class FilePointer:
    """Tracks how far a log file has been processed.

    A pointer is keyed by the configured (possibly wildcarded) logical path and
    remembers which concrete file it last described, so a rename or rotation to
    a different file can be detected on the next run.

    Attributes:
        logical_path: Configured directory plus filename pattern.
        filename: Concrete file the pointer refers to.
        last_read_position: Byte offset of the first unprocessed byte.
        file_creation_time: Creation timestamp of ``filename`` in epoch millis.
        file_inode: Inode of ``filename`` when last read, 0 if unknown.
        file_device: Device of ``filename`` when last read, 0 if unknown.
    """

    logical_path: str
    filename: str
    last_read_position: int = 0
    file_creation_time: int = 0
    file_inode: int = 0
    file_device: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.last_read_position < 0:
            raise ValueError(
                f"last_read_position must be non-negative, got {self.last_read_position}"
            )

    def update_last_read_position(self, position: int) -> None:
        """Atomically move the read position."""
        if position < 0:
            raise ValueError(f"last_read_position must be non-negative, got {position}")
        with self._lock:
            self.last_read_position = position

    def to_record(self) -> dict[str, int | str]:
        """Serialise to the on-disk record format."""
        with self._lock:
            return {
                "filename": self.filename,
                "lastReadPosition": self.last_read_position,
                "fileCreationTime": self.file_creation_time,
                "fileInode": self.file_inode,
                "fileDevice": self.file_device,
            }

    @classmethod
    def from_record(cls, logical_path: str, record: dict) -> FilePointer:
        """Build a pointer from an on-disk record.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field has the wrong type or a negative offset.
        """
        filename = record["filename"]
        if not isinstance(filename, str):
            raise ValueError(f"filename must be a string, got {filename!r}")
        return cls(
            logical_path=logical_path,
            filename=filename,
            last_read_position=int(record["lastReadPosition"]),
            file_creation_time=int(record.get("fileCreationTime", 0)),
            file_inode=int(record.get("fileInode", 0)),
            file_device=int(record.get("fileDevice", 0)),
        )
