"""Structured logging infrastructure with correlation IDs and secret redaction.

Correlation IDs are passed explicitly by callers (for example the engine
forwards the ``correlation_id`` argument of each operation) and attached to
records as an ``extra`` field. Records without one are tagged ``N/A``.

Handlers installed by ``configure_logging`` share two filters:

- ``CorrelationIDFilter`` guarantees the ``correlation_id`` attribute exists
- ``SecretRedactingFilter`` scrubs credentials from messages, args and extras
"""

import json
import logging
import logging.handlers
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Final, Literal, TextIO, override

from notification_dispatch.utils.sanitization import sanitize_args, sanitize_value

type LogFormat = Literal["text", "json"]

DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s"

SYSLOG_LOG_FORMAT: Final[str] = (
    "notification-dispatch[%(process)d]: %(levelname)s - [%(correlation_id)s] - %(name)s - %(message)s"
)

DEFAULT_SYSLOG_ADDRESS: Final[str] = "/dev/log"

_STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "asctime",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class CorrelationIDFilter(logging.Filter):
    """Ensure every record carries a ``correlation_id`` attribute."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = "N/A"
        return True


class SecretRedactingFilter(logging.Filter):
    """Redact credentials from the message, its args and any extra fields."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            sanitized_msg = sanitize_value(record.msg)
            if isinstance(sanitized_msg, str):
                record.msg = sanitized_msg

        if record.args and isinstance(record.args, tuple):
            record.args = sanitize_args(record.args)

        for attr_name in list(record.__dict__.keys()):
            if attr_name in _STANDARD_ATTRS or attr_name == "correlation_id" or attr_name.startswith("_"):
                continue
            attr_value: object = getattr(record, attr_name)  # pyright: ignore[reportAny]
            setattr(record, attr_name, sanitize_value(attr_value, field_name=attr_name))

        return True


class JSONFormatter(logging.Formatter):
    """Format records as single-line JSON objects including extra fields."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            log_data[key] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        try:
            return json.dumps(log_data, ensure_ascii=False, separators=(",", ":"), default=str)
        except (TypeError, ValueError) as e:
            fallback = {
                "timestamp": log_data["timestamp"],
                "level": record.levelname,
                "logger": record.name,
                "message": str(log_data["message"]),
                "serialization_error": str(e),
            }
            return json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))


def configure_logging(
    *,
    log_level: str = "INFO",
    log_format: LogFormat = "text",
    enable_syslog: bool = False,
    syslog_address: str = DEFAULT_SYSLOG_ADDRESS,
    enable_console: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Configure root logging with correlation IDs and secret redaction.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: ``text`` for human-readable lines, ``json`` for one JSON
            object per record
        enable_syslog: Also send records to the local syslog socket
        syslog_address: Syslog socket address
        enable_console: Write records to the console
        stream: Console stream (defaults to stdout)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    correlation_filter = CorrelationIDFilter()
    secret_filter = SecretRedactingFilter()

    if enable_syslog:
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=syslog_address,
                facility=logging.handlers.SysLogHandler.LOG_DAEMON,
            )
            syslog_handler.setFormatter(logging.Formatter(SYSLOG_LOG_FORMAT))
            syslog_handler.addFilter(correlation_filter)
            syslog_handler.addFilter(secret_filter)
            root_logger.addHandler(syslog_handler)
        except OSError as exc:
            print(
                f"Warning: Could not connect to syslog at {syslog_address}: {exc}",
                file=sys.stderr,
            )

    if enable_console:
        console_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        if log_format == "json":
            console_handler.setFormatter(JSONFormatter())
        else:
            console_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        console_handler.addFilter(correlation_filter)
        console_handler.addFilter(secret_filter)
        root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (typically ``__name__``)."""
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    correlation_id: str | None = None,
    extra: Mapping[str, object] | None = None,
) -> None:
    """Log a message with structured context fields.

    Example:
        >>> log_with_context(
        ...     get_logger(__name__),
        ...     logging.INFO,
        ...     "Notification sent",
        ...     correlation_id="req-42",
        ...     extra={"notification_id": "abc", "channel": "email"},
        ... )
    """
    context = dict(extra) if extra else {}
    if correlation_id:
        context["correlation_id"] = correlation_id
    logger.log(level, message, extra=context)
