"""
Logging setup with a colored, column-aligned console format.

Access decisions attach ``site_id`` / ``user_id`` / ``scope`` extras, which
are appended to the line when present.
"""

import logging
import time
import sys
from datetime import datetime
from typing import Optional, Any


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    EXTRA_KEYS = ('duration_ms', 'site_id', 'user_id', 'scope')

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        level_str = f"{color}{record.levelname:8}{self.RESET}"
        location = f"{record.module}.{record.funcName}" if record.funcName != '<module>' else record.module
        message = record.getMessage()

        extras = []
        for key in self.EXTRA_KEYS:
            if hasattr(record, key):
                value = getattr(record, key)
                if key == 'duration_ms':
                    extras.append(f"duration={value:.1f}ms")
                else:
                    extras.append(f"{key}={value}")

        extra_str = f" [{', '.join(extras)}]" if extras else ""

        if record.exc_info:
            extra_str += "\n" + self.formatException(record.exc_info)

        return f"{timestamp} | {level_str} | {location:30} | {message}{extra_str}"


def setup_logging(level: str = "DEBUG") -> None:
    """
    Set up enhanced logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    # Remove existing handlers
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter())
    handler.setLevel(getattr(logging, level.upper()))

    root.setLevel(getattr(logging, level.upper()))
    root.addHandler(handler)

    logging.getLogger('uvicorn').setLevel(logging.INFO)
    logging.getLogger('uvicorn.access').setLevel(logging.INFO)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with enhanced capabilities.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LogTimer:
    """
    Context manager for timing operations with automatic logging.

    Usage:
        with LogTimer(logger, "Creating tables"):
            # ... do work ...
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        level: int = logging.INFO,
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.extra_info = {}

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.log(self.level, f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.perf_counter() - self.start_time) * 1000

        extra = {'duration_ms': duration_ms}
        extra.update(self.extra_info)

        if exc_type is not None:
            self.logger.error(
                f"Failed: {self.operation} - {exc_val}",
                extra=extra
            )
        else:
            self.logger.log(
                self.level,
                f"Completed: {self.operation}",
                extra=extra
            )

        return False

    def add_info(self, key: str, value: Any) -> None:
        """Add extra info to the completion log."""
        self.extra_info[key] = value
