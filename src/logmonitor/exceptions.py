"""Exception hierarchy for the log monitor.

Every error raised by this package derives from ``LogMonitorError`` so the
caller's scheduler can tell monitor failures apart from programming errors and
decide whether a log entry is worth retrying.
"""

from __future__ import annotations


class LogMonitorError(Exception):
    """Base class for all log monitor errors."""


class ConfigurationError(LogMonitorError):
    """Invalid configuration: bad pattern text or a missing required field.

    Fatal for the affected log entry only; other entries keep running.
    """


class FileResolutionError(LogMonitorError):
    """The configured directory or file could not be resolved to a readable file."""


class LogFileNotFoundError(FileResolutionError, FileNotFoundError):
    """Directory missing, not a directory, or no file matches the wildcard."""


class FileAccessError(FileResolutionError, PermissionError):
    """The resolved log file exists but cannot be read."""


class TailError(LogMonitorError):
    """I/O failure while reading a single log file.

    Attributes:
        log_name: Display name of the log configuration.
        file_path: Path of the file that failed.
    """

    def __init__(self, message: str, log_name: str = "", file_path: str = ""):
        super().__init__(message)
        self.log_name = log_name
        self.file_path = file_path


class PersistenceError(LogMonitorError):
    """Cursor store could not be read or written."""
