"""
Pulse Logging Configuration
Structured logging with context for debugging and monitoring

Every log line is one JSON object (or one colored text line) carrying the
message plus key/value context. Credential-like context keys are masked
before formatting so agent keys and tokens never reach the log stream.
"""
import inspect
import logging
import sys
import json
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from functools import wraps
import time
import os

LOG_LEVEL = os.environ.get("PULSE_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("PULSE_LOG_FORMAT", "json")  # json or text

REDACTED = "***"
SENSITIVE_KEYS = frozenset({
    "api_key",
    "x-api-key",
    "authorization",
    "password",
    "secret_key",
    "access_token",
    "refresh_token",
})


def scrub(context: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credential values in a log context mapping."""
    return {
        key: REDACTED if key.lower() in SENSITIVE_KEYS else value
        for key, value in context.items()
    }


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredLogger:
    """Logger that outputs structured logs with bound context"""

    def __init__(self, name: str, **bound):
        self.name = name
        self.bound = bound
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(StructuredFormatter() if LOG_FORMAT == "json" else TextFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False

    def bind(self, **context) -> "StructuredLogger":
        """Child logger that adds ``context`` to every line, e.g. a job id."""
        return StructuredLogger(self.name, **{**self.bound, **context})

    def _log(self, level: int, message: str, context: Dict[str, Any]):
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            message,
            extra={"context": scrub({**self.bound, **context}), "logger_name": self.name},
        )

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, error: Optional[Exception] = None, **context):
        if error:
            context["error_type"] = type(error).__name__
            context["error_message"] = str(error)
            context["traceback"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        self._log(logging.ERROR, message, context)


class StructuredFormatter(logging.Formatter):
    """Formats logs as JSON"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": getattr(record, "logger_name", record.name),
            "message": record.getMessage(),
        }
        log_data.update(getattr(record, "context", {}))
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Formats logs as readable text"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        line = f"{color}[{timestamp}] [{record.levelname}]{self.RESET} {record.getMessage()}"

        context = getattr(record, "context", None) or {}
        pairs = " ".join(f"{k}={v}" for k, v in context.items() if k != "traceback")
        if pairs:
            line += f" \033[90m({pairs}){self.RESET}"
        if "traceback" in context:
            line += "\n" + context["traceback"]
        return line


# ============================================================
# FUNCTION TIMING DECORATOR
# ============================================================

def timed(logger: StructuredLogger):
    """Decorator to log coroutine execution time"""
    def decorator(func):
        if not inspect.iscoroutinefunction(func):
            raise TypeError("timed() only wraps coroutine functions")

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"{func.__name__} failed",
                    function=func.__name__,
                    error_type=type(e).__name__,
                    duration_ms=round((time.monotonic() - start) * 1000, 2),
                )
                raise
            logger.debug(
                f"{func.__name__} completed",
                function=func.__name__,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return result

        return async_wrapper

    return decorator


# ============================================================
# LOGGER INSTANCES
# ============================================================

api_logger = StructuredLogger("pulse.api")
scheduler_logger = StructuredLogger("pulse.scheduler")
generation_logger = StructuredLogger("pulse.generation")


def get_logger(name: str) -> StructuredLogger:
    """Get or create a logger by name"""
    return StructuredLogger(f"pulse.{name}")
