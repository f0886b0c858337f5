"""Shared utilities: structured logging and secret sanitization."""

from notification_dispatch.utils.logging import (
    configure_logging,
    get_logger,
    log_with_context,
)
from notification_dispatch.utils.sanitization import (
    REDACTED,
    sanitize_exception,
    sanitize_text,
    sanitize_value,
)

__all__ = [
    "REDACTED",
    "configure_logging",
    "get_logger",
    "log_with_context",
    "sanitize_exception",
    "sanitize_text",
    "sanitize_value",
]
