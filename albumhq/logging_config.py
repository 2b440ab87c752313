"""
AlbumHQ Logging Configuration
Structured logs with per-call context, shared by the API and the worker
"""
import inspect
import json
import logging
import os
import sys
import time
import traceback
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

# ============================================================
# LOG LEVELS
# ============================================================

LOG_LEVEL = os.environ.get("ALBUMHQ_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("ALBUMHQ_LOG_FORMAT", "json")  # json or text

ROOT_LOGGER_NAME = "albumhq"


class StructuredFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "context", {}))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Coloured single-line output for local development"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        line = f"{color}{stamp} {record.levelname:<7}{self.RESET} {record.name}: {record.getMessage()}"

        context = {k: v for k, v in getattr(record, "context", {}).items() if k != "traceback"}
        if context:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            line = f"{line} {self.DIM}{pairs}{self.RESET}"

        trace = getattr(record, "context", {}).get("traceback")
        if trace:
            line = f"{line}\n{trace.rstrip()}"
        return line


def _configure_root():
    """Attach the handler once to the ``albumhq`` logger; children propagate to it."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter() if LOG_FORMAT == "json" else TextFormatter())
        root.addHandler(handler)
        root.propagate = False
        root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return root


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredLogger:
    """
    Thin wrapper over ``logging`` that takes context as keyword arguments.

    ``bind`` returns a logger that adds fixed context to every call, e.g. the
    job id inside a worker task.
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        _configure_root()
        self.name = name
        self.logger = logging.getLogger(name)
        self.context = dict(context or {})

    def bind(self, **context) -> "StructuredLogger":
        return StructuredLogger(self.name, {**self.context, **context})

    def _log(self, level: int, message: str, context: Dict[str, Any]):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra={"context": {**self.context, **context}})

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, error: Optional[BaseException] = None, **context):
        self._log(logging.ERROR, message, _with_error(context, error))

    def critical(self, message: str, error: Optional[BaseException] = None, **context):
        self._log(logging.CRITICAL, message, _with_error(context, error))


def _with_error(context: Dict[str, Any], error: Optional[BaseException]) -> Dict[str, Any]:
    if error is None:
        return context
    context = dict(context)
    context["error_type"] = type(error).__name__
    context["error_message"] = str(error)
    if error.__traceback__ is not None:
        context["traceback"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return context


# ============================================================
# TIMING DECORATOR
# ============================================================

def timed(logger: StructuredLogger):
    """Log how long the wrapped call took; failures are logged and re-raised."""
    def decorator(func):
        def report(start: float, error: Optional[BaseException] = None):
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            if error is None:
                logger.debug(f"{func.__name__} completed", function=func.__name__, duration_ms=duration_ms)
            else:
                logger.warning(
                    f"{func.__name__} failed",
                    function=func.__name__,
                    error_type=type(error).__name__,
                    error_message=str(error),
                    duration_ms=duration_ms,
                )

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    report(start, e)
                    raise
                report(start)
                return result
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                report(start, e)
                raise
            report(start)
            return result
        return sync_wrapper

    return decorator


# ============================================================
# LOGGER INSTANCES
# ============================================================

api_logger = StructuredLogger("albumhq.api")
worker_logger = StructuredLogger("albumhq.worker")
media_logger = StructuredLogger("albumhq.media")
