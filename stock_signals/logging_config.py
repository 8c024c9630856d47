"""
Logging configuration for stock-signals.

Log output goes to stderr so that stdout carries only the record stream.
Supports:
- Log levels by name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Optional rotating log file
- JSON lines for structured logging
- Environment-based configuration (LOG_LEVEL, LOG_FILE, LOG_JSON)
"""

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Mapping, Optional

ROOT_LOGGER_NAME = "stock_signals"

HUMAN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _numeric_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
    color: bool = True,
    name: str = ROOT_LOGGER_NAME,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Path to a rotating log file (None = console only)
        json_format: Emit JSON lines instead of human-readable text
        color: Colour level names on the console
        name: Logger to configure (defaults to the package logger)
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    numeric_level = _numeric_level(level)
    logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if json_format:
        console_formatter: logging.Formatter = JsonFormatter()
    elif color:
        console_formatter = ColoredFormatter(HUMAN_FORMAT, DATE_FORMAT)
    else:
        console_formatter = logging.Formatter(HUMAN_FORMAT, DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(
            JsonFormatter() if json_format else logging.Formatter(HUMAN_FORMAT, DATE_FORMAT)
        )
        logger.addHandler(file_handler)

    # Don't propagate to the root logger
    logger.propagate = False
    return logger


def configure_default_logging(
    level: Optional[str] = None,
    color: bool = True,
    env: Optional[Mapping[str, str]] = None,
) -> logging.Logger:
    """
    Configure logging from environment variables.

    - LOG_LEVEL: Logging level (default: INFO); an explicit level wins
    - LOG_FILE: Log file path (default: none)
    - LOG_JSON: Use JSON format (default: false)
    """
    env = os.environ if env is None else env
    resolved_level = level or env.get("LOG_LEVEL", "INFO")
    log_file = env.get("LOG_FILE") or None
    json_format = env.get("LOG_JSON", "false").lower() == "true"

    logger = setup_logging(
        level=resolved_level,
        log_file=log_file,
        json_format=json_format,
        color=color,
    )
    logger.debug(
        "Logging initialized (level=%s, file=%s, json=%s)", resolved_level, log_file, json_format
    )
    return logger
