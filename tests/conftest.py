"""Shared fixtures for log monitor tests."""

from pathlib import Path

import pytest

from logmonitor.config import LogConfig, MonitorConfig, ReplacerRule, SearchString
from logmonitor.cursor_store import CursorStore


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    """Create temporary directory holding monitored logs."""
    directory = tmp_path / "logs"
    directory.mkdir()
    return directory


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "file_pointers.json"


@pytest.fixture
def cursor_store(state_file: Path) -> CursorStore:
    """Create CursorStore backed by a temporary file."""
    return CursorStore(state_file)


@pytest.fixture
def app_log(log_dir: Path) -> Path:
    """Create a log file with a few error and warning lines."""
    log_file = log_dir / "app.log"
    log_file.write_text(
        "2025-01-15 10:00:00 INFO started\n"
        "2025-01-15 10:00:01 ERROR disk full\n"
        "2025-01-15 10:00:02 WARN slow response\n"
        "2025-01-15 10:00:03 ERROR out of memory\n"
    )
    return log_file


@pytest.fixture
def search_strings() -> list[SearchString]:
    return [
        SearchString(display_name="Error", pattern="ERROR", match_exact_string=True),
        SearchString(display_name="Warn", pattern="WARN", match_exact_string=True),
        SearchString(display_name="Fatal", pattern="FATAL", match_exact_string=True),
    ]


@pytest.fixture
def replacers() -> list[ReplacerRule]:
    return [ReplacerRule(r"\s+", "_"), ReplacerRule(r"[^a-zA-Z0-9_]", "")]


@pytest.fixture
def log_config(log_dir: Path, search_strings: list[SearchString]) -> LogConfig:
    return LogConfig(
        log_directory=str(log_dir),
        log_name="app.log",
        display_name="App",
        search_strings=search_strings,
    )


@pytest.fixture
def monitor_config(log_config: LogConfig, state_file: Path) -> MonitorConfig:
    return MonitorConfig(
        logs=[log_config],
        metric_prefix="Custom Metrics/LogMonitor",
        number_of_threads=3,
        file_pointer_path=str(state_file),
    )
