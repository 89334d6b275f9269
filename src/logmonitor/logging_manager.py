"""Logging setup for the log monitor.

Provides a console plus rotating JSON file configuration for the
``logmonitor`` logger hierarchy and an adapter that stamps log context on
every record.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from pathlib import Path

_STANDARD_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "taskName",
        "extras",
    ]
)


class LogContextAdapter(logging.LoggerAdapter):
    """Logger adapter that adds log context (``log_name``, ``file_path``) to all messages."""

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


class JsonExtraFilter(logging.Filter):
    """Render ``extra`` fields of a record as a JSON fragment in ``record.extras``."""

    def filter(self, record: logging.LogRecord) -> bool:
        extras = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)  # Ensure serializable
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)

        if extras:
            record.extras = ", " + ", ".join(f'"{k}": {json.dumps(v)}' for k, v in extras.items())
        else:
            record.extras = ""
        return True


class LoggingManager:
    """Configures logging for the ``logmonitor`` package."""

    LOGGER_NAME = "logmonitor"

    def __init__(self, log_dir: str | Path = "/tmp/logmonitor/logs", log_level: str = "INFO"):
        """Initialize logging manager.

        Args:
            log_dir: Directory for the monitor's own log file
            log_level: Console log level
        """
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / "logmonitor.log"

        self._log_loggers: dict[str, LogContextAdapter] = {}
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger(self.LOGGER_NAME)
        logger.setLevel(logging.DEBUG)  # Handlers filter
        logger.propagate = False

        # Remove existing handlers
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

        # Console handler - human readable
        console_handler = logging.StreamHandler()
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(console_handler)

        # File handler - structured JSON
        file_handler = logging.handlers.RotatingFileHandler(
            self.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(JsonExtraFilter())
        file_handler.setFormatter(
            logging.Formatter(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
                '"message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s", '
                '"line": %(lineno)d%(extras)s}',
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        return logger

    def get_log_logger(self, display_name: str) -> LogContextAdapter:
        """Get or create a logger adapter carrying a monitored log's display name."""
        if display_name not in self._log_loggers:
            self._log_loggers[display_name] = LogContextAdapter(
                logging.getLogger(f"{self.LOGGER_NAME}.logs"), {"log_name": display_name}
            )
        return self._log_loggers[display_name]

    def shutdown(self) -> None:
        """Close and detach every handler and hand records back to the root logger."""
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)
        self.logger.propagate = True
