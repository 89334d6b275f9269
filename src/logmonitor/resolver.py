"""Resolution of configured directories and filename wildcards to real files."""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path

from .exceptions import FileAccessError, LogFileNotFoundError

logger = logging.getLogger(__name__)


def resolve_directory(path: str | Path) -> Path:
    """Expand ``~`` and ``$VAR``/``${VAR}`` placeholders and make the path absolute."""
    expanded = os.path.expanduser(os.path.expandvars(str(path)))
    return Path(expanded).absolute()


def stat_file(path: str | Path) -> os.stat_result:
    """Stat ``path``, reporting failures as resolution errors.

    Raises:
        LogFileNotFoundError: If the file disappeared (e.g. rotated away).
        FileAccessError: If the file can't be stat'ed for any other reason.
    """
    try:
        return Path(path).stat()
    except FileNotFoundError as e:
        raise LogFileNotFoundError(f"File [{path}] no longer exists") from e
    except OSError as e:
        raise FileAccessError(f"Unable to stat file [{path}]: {e}") from e


def file_creation_millis(path: str | Path) -> int:
    """Creation time of ``path`` in epoch millis.

    Uses the birth time where the platform reports it and falls back to
    ``st_ctime`` elsewhere. ``st_ctime`` also moves on every write, so it is
    recorded for reference only and never used to identify a file.
    """
    stat = Path(path).stat()
    created = getattr(stat, "st_birthtime", None)
    if created is None:
        created = stat.st_ctime
    return int(created * 1000)


def find_matching_files(directory: str | Path, pattern: str) -> list[Path]:
    """List files in ``directory`` whose name matches the wildcard ``pattern``.

    Args:
        directory: Directory to search; placeholders are expanded.
        pattern: Filename wildcard (``*``, ``?``, ``[...]``).

    Returns:
        Matching files sorted by name.

    Raises:
        LogFileNotFoundError: If the directory is missing or nothing matches.
        FileAccessError: If the directory can't be listed.
    """
    dir_path = resolve_directory(directory)
    if not dir_path.is_dir():
        raise LogFileNotFoundError(
            f"Directory [{dir_path}] not found. Ensure it is a directory."
        )

    try:
        matches = sorted(
            entry
            for entry in dir_path.iterdir()
            if fnmatch.fnmatchcase(entry.name, pattern) and entry.is_file()
        )
    except OSError as e:
        raise FileAccessError(f"Unable to list directory [{dir_path}]: {e}") from e
    if not matches:
        raise LogFileNotFoundError(
            f"Unable to find any file with name [{pattern}] in [{dir_path}]"
        )
    return matches


def find_active_file(directory: str | Path, pattern: str) -> Path:
    """Return the most recently modified file matching ``pattern``.

    Raises:
        LogFileNotFoundError: If the directory is missing or nothing matches.
        FileAccessError: If the selected file is not readable.
    """
    candidates = find_matching_files(directory, pattern)
    active = max(candidates, key=lambda p: stat_file(p).st_mtime)

    if not os.access(active, os.R_OK):
        raise FileAccessError(f"Unable to read file [{active}]")

    logger.debug(f"Resolved {pattern} in {directory} to {active} ({len(candidates)} candidates)")
    return active


def find_file_by_identity(
    directory: str | Path, pattern: str, inode: int, device: int
) -> Path | None:
    """Find the file matching ``pattern`` with the given inode and device.

    Rotation renames files but keeps their inode, so this locates a
    previously read file under its new name. Returns None if it is gone.
    """
    for path in find_matching_files(directory, pattern):
        stat = stat_file(path)
        if stat.st_ino == inode and stat.st_dev == device:
            return path
    return None


def find_files_modified_since(
    directory: str | Path, pattern: str, since: float
) -> list[Path]:
    """Files matching ``pattern`` modified at or after ``since`` (epoch seconds), oldest first."""
    candidates = find_matching_files(directory, pattern)
    modified = [(stat_file(p).st_mtime, p) for p in candidates]
    return [p for mtime, p in sorted(modified) if mtime >= since]
