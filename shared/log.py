#!/usr/bin/env python3
"""
roomlink Logging Configuration

Centralized logging setup for consistent formatting across the project.
Console output is coloured in development; file output is opt-in.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Spawning bot...")
    logger.error("Join failed", extra={"room": "123456", "bot": "Bot 1"})
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from roomlink.connection import SessionConnection


# ========================================
#           LOGGING FORMATTERS
# ========================================

def _context_prefix(record: logging.LogRecord) -> str:
    context = []

    # Common roomlink fields passed through ``extra``
    if getattr(record, "room", None):
        context.append(f"room={record.room}")
    if getattr(record, "bot", None):
        context.append(f"bot={record.bot}")
    if getattr(record, "variant", None):
        context.append(f"variant={record.variant}")
    if getattr(record, "conn", None):
        context.append(f"conn={record.conn}")

    return f"[{' '.join(context)}] " if context else ""


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output with connection context"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        record.msg = f"{_context_prefix(record)}{record.msg}"
        return super().format(record)


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(record.__dict__)
        record.msg = f"{_context_prefix(record)}{record.msg}"
        return super().format(record)


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance

    Examples:
        logger = get_logger(__name__)
        logger.info("Session created")

        # With context
        logger.warning("Room is full", extra={
            "room": "123456",
            "bot": "Bot 3",
            "variant": "matchmaker",
        })
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    _add_console_handler(logger, colored=_is_development())
    if os.getenv("ROOMLINK_LOG_FILE"):
        _add_file_handler(logger, Path(os.environ["ROOMLINK_LOG_FILE"]))

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    level = level or os.getenv("ROOMLINK_LOG_LEVEL")
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter = ColoredFormatter(fmt=fmt, datefmt='%H:%M:%S')
    else:
        formatter = GenericFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    """Add file handler, creating the parent directory if needed"""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stdout must be a terminal
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode"

    return True

# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)
    # Module loggers are configured on first use; align them with the root level
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(_get_log_level(level))


def log_connection_event(logger: logging.Logger, level: str, message: str,
                         connection: Optional["SessionConnection"] = None,
                         **context: Any) -> None:
    """
    Log a connection lifecycle event with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        connection: SessionConnection for automatic context extraction
        **context: Additional context fields

    Example:
        log_connection_event(logger, "info", "Join frame sent",
                             connection=conn, room="123456")
    """

    extra_context = {}

    if connection is not None:
        extra_context.update({
            'bot': connection.bot_name,
            'variant': connection.variant.value,
            'conn': connection.connection_id,
        })

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(message, extra=extra_context)
