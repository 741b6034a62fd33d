"""Logging configuration for catalog synchronization.

Console output for operators plus a daily JSONL file that keeps one
structured entry per sync event, so failed items can be reconciled later.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "setup_logging",
    "get_logger",
    "log_sync_event",
    "LOG_DIR",
]

LOG_DIR = Path(__file__).parent.parent / "logs"

ROOT_LOGGER = "catalog_sync"


class JSONLFileHandler(logging.Handler):
    """Appends each record as one JSON line, one file per day."""

    def __init__(self, log_dir: Path, prefix: str = ROOT_LOGGER):
        super().__init__()
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix

    def _get_log_file(self) -> Path:
        today = datetime.now().strftime("%Y%m%d")
        return self.log_dir / f"{self.prefix}_{today}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "timestamp": datetime.now().isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            if hasattr(record, "event_type"):
                entry["event_type"] = record.event_type
            if hasattr(record, "extra_data"):
                entry.update(record.extra_data)

            with open(self._get_log_file(), "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except Exception:
            self.handleError(record)


class ColoredConsoleHandler(logging.StreamHandler):
    """Console handler that colors the level name on terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if hasattr(self.stream, "isatty") and self.stream.isatty():
            color = self.COLORS.get(record.levelname, "")
            message = message.replace(
                f"[{record.levelname}]", f"[{color}{record.levelname}{self.RESET}]", 1
            )
        return message


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Set up the ``catalog_sync`` logger.

    Args:
        level: Logging level (default: INFO)
        log_to_file: Whether to log to the JSONL file
        log_to_console: Whether to log to the console
        log_dir: Custom log directory (default: project logs/)

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    if log_to_console:
        console_handler = ColoredConsoleHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        logger.addHandler(console_handler)

    if log_to_file:
        file_handler = JSONLFileHandler(log_dir or LOG_DIR)
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Get a logger below the package logger (``catalog_sync.<name>``)."""
    if name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_sync_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Log a structured sync event.

    Args:
        event_type: Type of event (e.g. 'index_complete', 'value_error')
        data: Event payload; an optional 'message' key becomes the log text
        level: Log level
        logger: Logger to emit on (default: package logger)
    """
    logger = logger or get_logger()
    if not logger.isEnabledFor(level):
        return

    record = logger.makeRecord(
        logger.name,
        level,
        "(catalog_sync)",
        0,
        data.get("message", event_type),
        (),
        None,
    )
    record.event_type = event_type
    record.extra_data = {k: v for k, v in data.items() if k != "message"}

    logger.handle(record)
