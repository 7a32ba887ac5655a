"""
Logging setup with colorlog.
Component-tagged console output and optional JSON-line log files.
"""

import logging
import re
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

import colorlog

# Trace context for correlating log lines of one save/load
_trace_id: ContextVar[str] = ContextVar("trace_id", default="-")


def get_trace_id() -> str:
    """Get trace ID for current context ("-" when none is set)."""
    return _trace_id.get()


def set_trace_id(trace_id: str):
    """Set trace ID for current context."""
    _trace_id.set(trace_id)


def clear_trace_id():
    """Clear trace ID from context."""
    _trace_id.set("-")


class SensitiveDataFilter(logging.Filter):
    """Filter to mask sensitive data like API keys in log messages."""

    # Patterns to mask (key prefix -> replacement)
    SENSITIVE_PATTERNS = [
        ("apiKey=", "apiKey=***MASKED***"),
        ("api_key=", "api_key=***MASKED***"),
        ("token=", "token=***MASKED***"),
        ("password=", "password=***MASKED***"),
    ]

    def filter(self, record):
        if hasattr(record, 'msg') and record.msg:
            msg = str(record.msg)
            for pattern, replacement in self.SENSITIVE_PATTERNS:
                if pattern in msg:
                    regex = rf"({re.escape(pattern)})([^\s&,]+)"
                    msg = re.sub(regex, replacement, msg)
            record.msg = msg
        return True


class ContextFilter(logging.Filter):
    """Add trace ID and component name to log records."""

    def __init__(self, component: str = "SYSTEM"):
        super().__init__()
        self.component = component

    def filter(self, record):
        record.trace_id = get_trace_id()
        record.component = self.component
        return True


def setup_logger(
    name: str,
    level: str = "INFO",
    log_file: Optional[Path] = None,
    component: str = None
) -> logging.Logger:
    """
    Setup logger with colorlog formatting.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging
        component: Component name for contextualized logging

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    # Component name (use module name if not specified)
    comp = component or name.split(".")[-1].upper()

    console_handler = colorlog.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))

    console_formatter = colorlog.ColoredFormatter(
        fmt=(
            "%(log_color)s[%(asctime)s.%(msecs)03d] "
            "%(levelname)-8s "
            "%(white)s[%(trace_id)s] "
            "%(cyan)s[%(component)s] "
            "%(message_log_color)s%(message)s"
        ),
        datefmt="%Y-%m-%d %H:%M:%S",
        log_colors={
            "DEBUG": "blue",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "red,bg_white",
        },
        secondary_log_colors={
            "message": {
                "DEBUG": "white",
                "INFO": "white",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            }
        },
        reset=True,
        style="%"
    )

    console_handler.setFormatter(console_formatter)
    console_handler.addFilter(ContextFilter(comp))
    console_handler.addFilter(SensitiveDataFilter())
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)

        # JSON-style formatter for file (easier parsing)
        file_formatter = logging.Formatter(
            fmt=(
                '{"timestamp":"%(asctime)s.%(msecs)03d",'
                '"level":"%(levelname)s",'
                '"trace_id":"%(trace_id)s",'
                '"component":"%(component)s",'
                '"logger":"%(name)s",'
                '"message":"%(message)s"}'
            ),
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_formatter)
        file_handler.addFilter(ContextFilter(comp))
        file_handler.addFilter(SensitiveDataFilter())
        logger.addHandler(file_handler)

    # Let pytest's caplog and application root handlers see records too
    logger.propagate = True

    return logger


