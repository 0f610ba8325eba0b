"""Centralized logging configuration for PaperDesk.

One call to ``setup_logging`` at startup configures the root logger: a
colored console formatter for interactive use, JSON lines for production
(LOG_FORMAT=json) and always for the optional rotating log file.
"""

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Third-party loggers that are chatty at INFO/DEBUG.
NOISY_LOGGERS = ("yfinance", "urllib3", "peewee")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as a single JSON line.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)

        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with a colored level name.

        Args:
            record: Log record to format

        Returns:
            Colored formatted log string
        """
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, name, None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {name}")
    return numeric_level


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    use_json: bool = False,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
) -> None:
    """Configure logging for the application.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL environment variable,
            then INFO.
        log_file: Optional path to a rotating JSON log file.
        use_json: Use JSON lines on the console. LOG_FORMAT=json|console
            overrides this argument.
        max_bytes: Maximum size of log file before rotation (default: 10MB)
        backup_count: Number of backup log files to keep (default: 5)

    Raises:
        ValueError: If the level name is unknown.

    Example:
        >>> from src.config.logging import setup_logging
        >>> setup_logging(level="DEBUG", log_file=Path("logs/paperdesk.log"))
    """
    numeric_level = _resolve_level(level)

    log_format = os.getenv("LOG_FORMAT", "").lower()
    if log_format in ("json", "console"):
        use_json = log_format == "json"

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        JSONFormatter()
        if use_json
        else ConsoleFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={logging.getLevelName(numeric_level)}, "
        f"format={'JSON' if use_json else 'console'}, "
        f"file={'enabled' if log_file else 'disabled'}"
    )
