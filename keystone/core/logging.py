"""Logging for Keystone.

Everything logs under the "keystone" logger:
    - stderr: short human-readable lines (INFO, or DEBUG with --debug)
    - <log_path>/keystone.log: JSON lines at DEBUG, rotated at 10 MB

Structured fields ride along as extra={"context": {...}}:

    logger = get_logger(__name__)
    logger.info("Showing booked", extra={"context": {"entry_id": 12, "agent_id": 3}})
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

ROOT_LOGGER_NAME = "keystone"
LOG_FILE_NAME = "keystone.log"


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "context", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for the log file."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        context = _context(record)
        if context:
            log_data["context"] = context
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        # datetimes and enums in context
        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short console lines with context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        message = record.getMessage()
        context = _context(record)
        if context:
            message += " [" + ", ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return f"{timestamp} {record.levelname[:4]:4s} {record.name}: {message}"


_logging_initialized = False


def setup_logging(log_dir: Path, debug: bool = False) -> None:
    """Attach console and file handlers to the keystone logger.

    Safe to call more than once; only the first call configures.

    Args:
        log_dir: Directory for keystone.log (created if missing)
        debug: Show DEBUG records on the console too
    """
    global _logging_initialized

    if _logging_initialized:
        return

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(file_handler)

    _logging_initialized = True
    root_logger.info(
        "Logging initialized",
        extra={"context": {"log_dir": str(log_dir), "debug": debug}},
    )


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, nested under the keystone logger.

    "keystone.engine.interview" keeps its name; anything else
    ("main", "tests.module") is prefixed with "keystone.".
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
