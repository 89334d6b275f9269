"""Tests for LogMonitor runs."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from logmonitor.config import LogConfig, MonitorConfig, SearchString
from logmonitor.cursor_store import CursorStore
from logmonitor.exceptions import ConfigurationError, FileAccessError, LogFileNotFoundError
from logmonitor.monitor import LogMonitor

ERROR_KEY = "App/SearchString/Error/Occurrences"


class TestLogMonitorResume:
    """Tests for incremental processing across runs."""

    def test_first_run_counts_whole_file(self, monitor_config, app_log: Path) -> None:
        monitor = LogMonitor(monitor_config)

        metrics = monitor.process_log(monitor_config.logs[0])

        assert metrics.get_value(ERROR_KEY) == 2
        pointer = monitor.cursor_store.get_pointer(monitor_config.logs[0].logical_path, app_log)
        assert pointer.last_read_position == app_log.stat().st_size

    def test_second_run_without_new_lines_is_idempotent(self, monitor_config, app_log: Path) -> None:
        log_config = monitor_config.logs[0]
        monitor = LogMonitor(monitor_config)
        monitor.process_log(log_config)
        offset = monitor.cursor_store.get_pointer(log_config.logical_path, app_log).last_read_position

        second = monitor.process_log(log_config)

        assert second.get_value(ERROR_KEY) == 0
        assert second.get_value("App/SearchString/Warn/Occurrences") == 0
        after = monitor.cursor_store.get_pointer(log_config.logical_path, app_log).last_read_position
        assert after == offset

    def test_only_appended_lines_are_counted(self, monitor_config, app_log: Path) -> None:
        log_config = monitor_config.logs[0]
        LogMonitor(monitor_config).process_log(log_config)

        with app_log.open("a") as f:
            f.write("2025-01-15 10:01:00 ERROR again\n")

        # A fresh monitor reloads cursors from disk
        metrics = LogMonitor(monitor_config).process_log(log_config)

        assert metrics.get_value(ERROR_KEY) == 1
        assert metrics.get_value("App/SearchString/Warn/Occurrences") == 0

    def test_rotation_resets_to_start(self, monitor_config, app_log: Path) -> None:
        log_config = monitor_config.logs[0]
        monitor = LogMonitor(monitor_config)
        monitor.process_log(log_config)

        app_log.write_text("ERROR after rotation\n")

        metrics = monitor.process_log(log_config)

        assert metrics.get_value(ERROR_KEY) == 1
        pointer = monitor.cursor_store.get_pointer(log_config.logical_path, app_log)
        assert pointer.last_read_position == len("ERROR after rotation\n")

    def test_filename_change_resets_to_start(self, monitor_config, app_log: Path, log_dir: Path) -> None:
        log_config = monitor_config.logs[0]
        store = CursorStore(monitor_config.file_pointer_path)
        store.update_pointer(log_config.logical_path, log_dir / "app-old.log", 5, 0)

        metrics = LogMonitor(monitor_config, cursor_store=store).process_log(log_config)

        assert metrics.get_value(ERROR_KEY) == 2
        assert store.get_pointer(log_config.logical_path, app_log).filename == str(app_log)

    def test_zero_fill_for_unmatched_search_strings(self, monitor_config, app_log: Path) -> None:
        log_config = monitor_config.logs[0]
        log_config.search_strings = [
            SearchString("Error", "ERROR", match_exact_string=True),
            SearchString("Fatal", "FATAL", match_exact_string=True),
            SearchString("Panic", "PANIC", match_exact_string=True),
        ]

        metrics = LogMonitor(monitor_config).process_log(log_config)

        occurrences = {k: v for k, v in metrics.to_flat_dict().items() if k.endswith("/Occurrences")}
        assert len(occurrences) == 3
        assert sorted(occurrences.values()) == ["0", "0", "2"]

    def test_metric_paths_are_fully_qualified(self, monitor_config, app_log: Path) -> None:
        metrics = LogMonitor(monitor_config).process_log(monitor_config.logs[0])

        flat = metrics.to_flat_dict()
        assert flat[f"Custom Metrics/LogMonitor/{ERROR_KEY}"] == "2"
        assert flat["Custom Metrics/LogMonitor/App/File size (Bytes)"] == str(app_log.stat().st_size)


class TestLogMonitorErrors:
    """Tests for error surfacing and isolation."""

    def test_bad_pattern_raises_configuration_error(self, monitor_config, app_log: Path) -> None:
        log_config = monitor_config.logs[0]
        log_config.search_strings = [SearchString("Broken", "(unclosed")]

        with pytest.raises(ConfigurationError, match="Broken"):
            LogMonitor(monitor_config).process_log(log_config)

    def test_missing_directory_leaves_cursor_untouched(self, monitor_config, tmp_path: Path) -> None:
        log_config = monitor_config.logs[0]
        log_config.log_directory = str(tmp_path / "missing")
        monitor = LogMonitor(monitor_config)

        with pytest.raises(LogFileNotFoundError):
            monitor.process_log(log_config)

        assert monitor.cursor_store.get_all_pointers() == []

    def test_unreadable_file_raises_access_error(self, monitor_config, app_log: Path) -> None:
        with patch("logmonitor.resolver.os.access", return_value=False):
            with pytest.raises(FileAccessError):
                LogMonitor(monitor_config).process_log(monitor_config.logs[0])

    def test_tail_failure_does_not_advance_pointer(self, monitor_config, app_log: Path) -> None:
        log_config = monitor_config.logs[0]
        monitor = LogMonitor(monitor_config)

        with patch("logmonitor.tailer.os.fstat", side_effect=OSError("device error")):
            metrics = monitor.process_log(log_config)

        assert len(metrics) == 0
        assert monitor.cursor_store.get_all_pointers() == []

        # The retry starts from the same offset and sees every line
        assert monitor.process_log(log_config).get_value(ERROR_KEY) == 2

    def test_process_log_reports_failed_tail(self, monitor_config, app_log: Path, caplog) -> None:
        with patch("logmonitor.tailer.os.fstat", side_effect=OSError("device error")):
            with caplog.at_level("WARNING", logger="logmonitor.monitor"):
                LogMonitor(monitor_config).process_log(monitor_config.logs[0])

        assert "Metrics for App are incomplete" in caplog.text
        assert str(app_log) in caplog.text

    def test_run_isolates_unlistable_directory(self, monitor_config, app_log: Path, tmp_path: Path) -> None:
        locked = tmp_path / "locked"
        locked.mkdir()
        (locked / "db.log").write_text("ERROR x\n")
        monitor_config.logs.append(
            LogConfig(str(locked), "*.log", "Locked", [SearchString("Error", "ERROR")])
        )
        real_iterdir = Path.iterdir

        def guarded_iterdir(self):
            if self.name == "locked":
                raise PermissionError(13, "Permission denied", str(self))
            return real_iterdir(self)

        with patch.object(Path, "iterdir", guarded_iterdir):
            report = LogMonitor(monitor_config).run()

        assert isinstance(report.errors["Locked"], FileAccessError)
        assert str(locked) in str(report.errors["Locked"])
        assert report.metrics["App"].get_value(ERROR_KEY) == 2
        assert CursorStore(monitor_config.file_pointer_path).has_pointer(monitor_config.logs[0].logical_path)

    def test_run_isolates_failing_logs(self, monitor_config, app_log: Path, tmp_path: Path) -> None:
        search = [SearchString("Error", "ERROR", match_exact_string=True)]
        monitor_config.logs.extend(
            [
                LogConfig(str(tmp_path / "missing"), "*.log", "Missing", search),
                LogConfig(str(app_log.parent), "app.log", "Broken", [SearchString("Bad", "[")]),
            ]
        )

        report = LogMonitor(monitor_config).run()

        assert set(report.metrics) == {"App"}
        assert report.metrics["App"].get_value(ERROR_KEY) == 2
        assert isinstance(report.errors["Missing"], LogFileNotFoundError)
        assert isinstance(report.errors["Broken"], ConfigurationError)
        assert report.failed_tails == []
        assert report.persistence_error is None

    def test_run_with_failing_file_still_completes(self, log_dir: Path, state_file: Path) -> None:
        search = [SearchString("Error", "ERROR", match_exact_string=True)]
        logs = []
        for i in range(1, 6):
            (log_dir / f"svc{i}.log").write_text("ERROR x\n" * i)
            logs.append(LogConfig(str(log_dir), f"svc{i}.log", f"Svc{i}", search))
        config = MonitorConfig(logs=logs, number_of_threads=3, file_pointer_path=str(state_file))
        real_fstat = os.fstat
        broken = (log_dir / "svc3.log").stat().st_ino

        def flaky_fstat(fd: int):
            st = real_fstat(fd)
            if st.st_ino == broken:
                raise OSError("device error")
            return st

        with patch("logmonitor.tailer.os.fstat", side_effect=flaky_fstat):
            report = LogMonitor(config).run()

        assert len(report.failed_tails) == 1
        assert report.failed_tails[0].job.log_name == "Svc3"
        for i in (1, 2, 4, 5):
            assert report.metrics[f"Svc{i}"].get_value(f"Svc{i}/SearchString/Error/Occurrences") == i
        assert len(report.metrics["Svc3"]) == 0

    def test_run_reports_persistence_failure(self, monitor_config, app_log: Path) -> None:
        monitor = LogMonitor(monitor_config)

        with patch.object(Path, "replace", side_effect=OSError("read-only file system")):
            report = monitor.run()

        assert report.persistence_error is not None
        assert report.metrics["App"].get_value(ERROR_KEY) == 2


class TestLogMonitorWildcards:
    """Tests for wildcard logs and rotated back-catalogs."""

    def test_wildcard_tails_most_recent_file(self, log_dir: Path, state_file: Path) -> None:
        old = log_dir / "app-2025-01-14.log"
        new = log_dir / "app-2025-01-15.log"
        old.write_text("ERROR old\n")
        new.write_text("ERROR new\nERROR newer\n")
        os.utime(old, (1_000_000, 1_000_000))
        log_config = LogConfig(
            str(log_dir), "app-*.log", "App", [SearchString("Error", "ERROR", match_exact_string=True)]
        )
        config = MonitorConfig(logs=[log_config], file_pointer_path=str(state_file))

        metrics = LogMonitor(config).process_log(log_config)

        assert metrics.get_value(ERROR_KEY) == 2

    def test_display_name_defaults_to_log_name(self, log_dir: Path, app_log: Path, state_file: Path) -> None:
        log_config = LogConfig(
            str(log_dir), "app.log", search_strings=[SearchString("Error", "ERROR", match_exact_string=True)]
        )
        config = MonitorConfig(logs=[log_config], file_pointer_path=str(state_file))

        metrics = LogMonitor(config).process_log(log_config)

        assert metrics.get_value("app.log/SearchString/Error/Occurrences") == 2


class TestLogMonitorRotatedFiles:
    """Tests for reading rotated back-catalogs, on real files without patched timestamps."""

    @pytest.fixture
    def rotating_config(self, log_dir: Path, state_file: Path) -> MonitorConfig:
        log_config = LogConfig(
            str(log_dir),
            "app.log*",
            "App",
            [SearchString("Error", "ERROR", match_exact_string=True)],
            process_rotated_files=True,
        )
        return MonitorConfig(logs=[log_config], file_pointer_path=str(state_file))

    def _run(self, config: MonitorConfig):
        return LogMonitor(config).run()

    def test_appended_lines_counted_once(self, rotating_config, app_log: Path) -> None:
        assert self._run(rotating_config).metrics["App"].get_value(ERROR_KEY) == 2

        with app_log.open("a") as f:
            f.write("2025-01-15 10:01:00 ERROR again\n")
        report = self._run(rotating_config)

        assert report.metrics["App"].get_value(ERROR_KEY) == 1
        assert len(report.results) == 1

    def test_rename_rotation_resumes_rotated_file(self, rotating_config, app_log: Path, log_dir: Path) -> None:
        self._run(rotating_config)
        with app_log.open("a") as f:
            f.write("ERROR written before rotation\n")
        rotated = app_log.rename(log_dir / "app.log.1")
        os.utime(rotated, (1_000_000, 1_000_000))
        app_log.write_text("ERROR fresh\n")

        report = self._run(rotating_config)

        assert report.metrics["App"].get_value(ERROR_KEY) == 2
        assert [r.job.file_path for r in report.results] == [rotated, app_log]
        assert all(r.success for r in report.results)
        assert "App/File size (Bytes)" in report.metrics["App"]

        store = CursorStore(rotating_config.file_pointer_path)
        pointer = store.get_pointer(rotating_config.logs[0].logical_path, app_log)
        assert pointer.filename == str(app_log)
        assert pointer.last_read_position == len("ERROR fresh\n")
        assert pointer.file_inode == app_log.stat().st_ino

    def test_every_file_rotated_since_last_run_is_read(
        self, rotating_config, app_log: Path, log_dir: Path
    ) -> None:
        self._run(rotating_config)
        with app_log.open("a") as f:
            f.write("ERROR written before rotation\n")
        oldest = app_log.rename(log_dir / "app.log.2")
        os.utime(oldest, (1_000_000, 1_000_000))
        middle = log_dir / "app.log.1"
        middle.write_text("ERROR one\nERROR two\n")
        os.utime(middle, (2_000_000, 2_000_000))
        app_log.write_text("ERROR fresh\n")

        report = self._run(rotating_config)

        assert report.metrics["App"].get_value(ERROR_KEY) == 4
        starts = {r.job.file_path.name: r.job.start_position for r in report.results}
        assert starts["app.log.1"] == 0
        assert starts["app.log"] == 0
        assert starts["app.log.2"] > 0

    def test_renamed_file_keeps_offset(self, rotating_config, app_log: Path, log_dir: Path) -> None:
        self._run(rotating_config)
        with app_log.open("a") as f:
            f.write("ERROR written before rotation\n")
        app_log.rename(log_dir / "app.log.1")

        report = self._run(rotating_config)

        assert report.metrics["App"].get_value(ERROR_KEY) == 1

    def test_truncated_in_place_restarts(self, rotating_config, app_log: Path) -> None:
        self._run(rotating_config)

        with app_log.open("w") as f:
            f.write("ERROR after truncation\n")
        report = self._run(rotating_config)

        assert report.metrics["App"].get_value(ERROR_KEY) == 1
        assert len(report.results) == 1

    def test_record_without_identity_uses_filename(self, rotating_config, log_dir: Path) -> None:
        rotated = log_dir / "app.log.1"
        active = log_dir / "app.log"
        rotated.write_text("ERROR seen\nERROR unseen\n")
        os.utime(rotated, (1_000_000, 1_000_000))
        active.write_text("ERROR fresh\n")
        store = CursorStore(rotating_config.file_pointer_path)
        store.update_pointer(rotating_config.logs[0].logical_path, rotated, len("ERROR seen\n"), 0)

        report = LogMonitor(rotating_config, cursor_store=store).run()

        assert report.metrics["App"].get_value(ERROR_KEY) == 2
        assert store.get_pointer(rotating_config.logs[0].logical_path, active).filename == str(active)
