"""Configuration for the log monitor.

Typed dataclasses describe directories, filename patterns and search
definitions. ``load_config`` reads the same structure from a YAML file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError
from .models import DEFAULT_METRIC_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchString:
    """A declarative search definition.

    Attributes:
        display_name: Name used as the metric path segment.
        pattern: Regex (or literal token when ``match_exact_string``).
        match_exact_string: Only match the pattern as a whole whitespace-delimited token.
        case_sensitive: Compile without ``re.IGNORECASE``.
        print_matched_string: Report each distinct matched text as its own metric.
    """

    display_name: str
    pattern: str
    match_exact_string: bool = False
    case_sensitive: bool = True
    print_matched_string: bool = False


@dataclass(frozen=True)
class ReplacerRule:
    """Regex substitution applied to matched text before it becomes a metric name."""

    pattern: str
    replacement: str = ""


@dataclass
class LogConfig:
    """One monitored log: a directory, a filename wildcard and its searches.

    Attributes:
        log_directory: Directory holding the log; ``~`` and ``$VAR`` are expanded.
        log_name: Filename, possibly with ``*``/``?`` wildcards.
        display_name: Metric path segment for this log. Defaults to ``log_name``.
        search_strings: Patterns to count.
        replacers: Ordered replacer rules for matched text.
        process_rotated_files: Also tail files rotated in since the last run.
    """

    log_directory: str
    log_name: str
    display_name: str = ""
    search_strings: list[SearchString] = field(default_factory=list)
    replacers: list[ReplacerRule] = field(default_factory=list)
    process_rotated_files: bool = False

    def __post_init__(self) -> None:
        if not self.display_name or not self.display_name.strip():
            self.display_name = self.log_name

    @property
    def logical_path(self) -> str:
        """Directory and wildcard joined, used as the cursor store key."""
        directory = self.log_directory.rstrip("/")
        return f"{directory}/{self.log_name}"


@dataclass
class MonitorConfig:
    """Top-level configuration for a monitor run.

    Attributes:
        logs: Log entries to process.
        metric_prefix: Root namespace for every metric path.
        number_of_threads: Size of the tailing worker pool.
        file_pointer_path: JSON file holding persisted cursors.
    """

    logs: list[LogConfig] = field(default_factory=list)
    metric_prefix: str = DEFAULT_METRIC_PREFIX
    number_of_threads: int = 5
    file_pointer_path: str = "/tmp/logmonitor/file_pointers.json"


def _require(entry: dict[str, Any], key: str, context: str) -> Any:
    value = entry.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(f"Missing required field '{key}' in {context}")
    return value


def _parse_search_string(entry: dict[str, Any], context: str) -> SearchString:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Search string in {context} must be a mapping, got {entry!r}")
    display_name = _require(entry, "displayName", context)
    return SearchString(
        display_name=str(display_name),
        pattern=str(_require(entry, "pattern", f"search string '{display_name}' of {context}")),
        match_exact_string=bool(entry.get("matchExactString", False)),
        case_sensitive=bool(entry.get("caseSensitive", True)),
        print_matched_string=bool(entry.get("printMatchedString", False)),
    )


def _parse_replacers(entries: list[dict[str, Any]] | None) -> list[ReplacerRule]:
    rules = []
    for entry in entries or []:
        if not isinstance(entry, dict) or "replace" not in entry:
            raise ConfigurationError(f"Replacer must define 'replace', got {entry!r}")
        rules.append(
            ReplacerRule(pattern=str(entry["replace"]), replacement=str(entry.get("replaceWith", "")))
        )
    return rules


def _parse_log(entry: dict[str, Any], replacers: list[ReplacerRule]) -> LogConfig:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Log entry must be a mapping, got {entry!r}")
    context = f"log '{entry.get('displayName') or entry.get('logName') or '?'}'"
    search_strings = [
        _parse_search_string(s, context) for s in entry.get("searchStrings") or []
    ]

    seen: set[str] = set()
    for search_string in search_strings:
        if search_string.display_name in seen:
            logger.warning(
                f"Duplicate search string display name '{search_string.display_name}' "
                f"in {context}; later definitions overwrite earlier metrics"
            )
        seen.add(search_string.display_name)

    return LogConfig(
        log_directory=str(_require(entry, "logDirectory", context)),
        log_name=str(_require(entry, "logName", context)),
        display_name=str(entry.get("displayName") or ""),
        search_strings=search_strings,
        replacers=replacers,
        process_rotated_files=bool(entry.get("processRotatedFiles", False)),
    )


def parse_config(data: dict[str, Any]) -> MonitorConfig:
    """Build a MonitorConfig from a parsed YAML mapping.

    Args:
        data: Mapping as produced by ``yaml.safe_load``.

    Returns:
        Populated configuration.

    Raises:
        ConfigurationError: If the structure is invalid or a required field is missing.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    replacers = _parse_replacers(data.get("metricCharacterReplacer"))
    logs = [_parse_log(entry, replacers) for entry in data.get("logs") or []]

    try:
        number_of_threads = int(data.get("numberOfThreads", 5))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"numberOfThreads must be an integer, got {data.get('numberOfThreads')!r}"
        ) from e
    if number_of_threads < 1:
        raise ConfigurationError(f"numberOfThreads must be at least 1, got {number_of_threads}")

    config = MonitorConfig(
        logs=logs,
        metric_prefix=str(data.get("metricPrefix") or DEFAULT_METRIC_PREFIX).rstrip("/"),
        number_of_threads=number_of_threads,
    )
    if data.get("filePointerPath"):
        config.file_pointer_path = str(data["filePointerPath"])
    return config


def load_config(config_path: str | Path) -> MonitorConfig:
    """Load monitor configuration from a YAML file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        Populated configuration.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigurationError: If YAML parsing or validation fails
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Log monitor configuration file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse configuration YAML: {e}") from e

    logger.debug(f"Loaded log monitor configuration from {path}")
    return parse_config(data or {})
