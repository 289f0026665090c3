"""Logging setup for inboxrules.

Everything logs under the ``inboxrules`` logger tree with structured
``extra={...}`` fields. Each matching pass tags its records with a
correlation id (the message id) so one message can be followed through
the static, group, category and AI phases.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from .config import get_config_dir

ROOT_LOGGER = "inboxrules"

# Per task, so concurrent passes keep separate ids
_correlation_id: ContextVar[str | None] = ContextVar("inboxrules_correlation_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName", "correlation_id"}

VERBOSE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
QUIET_FORMAT = "%(levelname)s: %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object, including its ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            entry["correlation_id"] = correlation_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(entry, default=str)


class ContextFilter(logging.Filter):
    """Stamp records with the correlation id of the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get()
        return True


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation id for the current context, generating one if not given."""
    value = correlation_id or uuid.uuid4().hex[:8]
    _correlation_id.set(value)
    return value


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def _make_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = False,
    verbose: bool = False,
    json_format: bool = False,
) -> logging.Logger:
    """
    Configure the ``inboxrules`` logger. Safe to call more than once.

    Args:
        level: Logger level when not verbose
        log_to_file: Also write everything to ~/.inboxrules/logs/inboxrules.log
        verbose: Log at DEBUG and show it on the console
        json_format: Emit JSON lines instead of plain text

    Returns:
        The configured ``inboxrules`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if verbose else level)

    if json_format:
        console_formatter: logging.Formatter = JSONFormatter()
    elif verbose:
        console_formatter = logging.Formatter(VERBOSE_FORMAT, datefmt="%H:%M:%S")
    else:
        console_formatter = logging.Formatter(QUIET_FORMAT)

    # Keep normal CLI output clean: warnings and up unless verbose
    console_level = logging.DEBUG if verbose else logging.WARNING
    logger.addHandler(_make_handler(logging.StreamHandler(sys.stderr), console_level, console_formatter))

    if log_to_file:
        log_dir = get_config_dir() / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        file_formatter = JSONFormatter() if json_format else logging.Formatter(FILE_FORMAT)
        logger.addHandler(
            _make_handler(logging.FileHandler(log_dir / "inboxrules.log"), logging.DEBUG, file_formatter)
        )

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Get the package logger, or a child such as ``get_logger("matching")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)
