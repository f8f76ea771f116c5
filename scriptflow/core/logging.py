"""Logging configuration for the automation engine.

Run identifiers (script, rule run, workflow, execution) are carried in a
context variable, so every record logged while a run is in progress is
tagged with that run's ids, even when several runs interleave on one event
loop.
"""

import json
import logging
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(funcName)s:%(lineno)d] - %(message)s"

# Loggers kept quieter than the engine's own
NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "asyncio": logging.WARNING,
}

_run_context: ContextVar[Dict[str, Any]] = ContextVar("scriptflow_run_context", default={})


class StructuredFormatter(logging.Formatter):
    """Formats records as one JSON object per line, run ids included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        entry.update(getattr(record, "extra_fields", {}))
        return json.dumps(entry, default=str)


class RunContextFilter(logging.Filter):
    """Adds the current run's identifiers to each record's ``extra_fields``.

    Fields passed explicitly through :func:`log_with_context` win over the
    run context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        explicit = getattr(record, "extra_fields", None) or {}
        record.extra_fields = {**_run_context.get(), **explicit}
        return True


_context_filter = RunContextFilter()


def set_logging_context(**fields) -> Token:
    """Add run identifiers to the current context; returns a token for :func:`clear_logging_context`."""
    return _run_context.set({**_run_context.get(), **fields})


def clear_logging_context(token: Optional[Token] = None) -> None:
    """Restore the context saved in ``token``, or drop every field when none is given."""
    if token is not None:
        _run_context.reset(token)
    else:
        _run_context.set({})


def get_logging_context() -> Dict[str, Any]:
    return dict(_run_context.get())


@contextmanager
def logging_context(**fields) -> Iterator[None]:
    """Tag every record logged inside the block with ``fields``."""
    token = set_logging_context(**fields)
    try:
        yield
    finally:
        clear_logging_context(token)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure logging for the automation engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        log_format: Custom log format string, ignored when structured
        structured: Emit JSON records carrying the run context
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of backup files to keep

    Returns:
        Root logger instance
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_context_filter)
        root_logger.addHandler(handler)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    engine_level = logging.DEBUG if level.upper() == "DEBUG" else logging.INFO
    logging.getLogger("scriptflow.core").setLevel(engine_level)
    logging.getLogger("scriptflow.api").setLevel(logging.INFO)
    logging.getLogger("scriptflow.commands").setLevel(logging.INFO)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **fields):
    """Log a message with extra structured fields."""
    logger.log(level, message, extra={"extra_fields": fields})
