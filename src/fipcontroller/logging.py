"""Structured logging configuration for the floating IP controller.

This module provides a centralized logging setup using structlog with support
for both development (colored console output) and production (JSON) modes.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

# logrus-style level names used by existing deployments
_LEVEL_ALIASES = {
    "TRACE": "DEBUG",
    "WARN": "WARNING",
    "FATAL": "CRITICAL",
    "PANIC": "CRITICAL",
}

SENSITIVE_FIELDS = {
    "token",
    "api_token",
    "hcloud_api_token",
    "api_key",
    "authorization",
    "password",
    "secret",
}


def normalize_level(log_level: str) -> str:
    """Map a level name (stdlib or logrus flavoured) to a stdlib level name."""
    level = log_level.strip().upper()
    return _LEVEL_ALIASES.get(level, level)


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    from fipcontroller import __version__

    event_dict["app"] = "fip-controller"
    event_dict["version"] = __version__
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values of sensitive keys before rendering."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_FIELDS and event_dict[key]:
            event_dict[key] = "[REDACTED]"
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
) -> None:
    """Configure structured logging for the controller.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            logrus names such as ``warn`` or ``trace`` are accepted too.
        log_format: Output format - "console" for colored development output,
                   "json" for structured production logging.
    """
    numeric_level = getattr(logging, normalize_level(log_level), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        stream=sys.stdout,
        force=True,
    )

    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with optional initial context.

    Args:
        name: Logger name, typically __name__ of the calling module.
        **initial_context: Additional context to bind to all log messages.

    Returns:
        A configured structlog logger instance.

    Example:
        >>> logger = get_logger(__name__, component="controller")
        >>> logger.info("reconciliation_started", interval=30)
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_context(**context: Any) -> None:
    """Bind context to every log event emitted from the current task.

    Example:
        >>> bind_context(identity="fip-controller-7d9f")
    """
    structlog.contextvars.bind_contextvars(**context)


def unbind_context(*keys: str) -> None:
    """Remove keys from the current logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context from the current task."""
    structlog.contextvars.clear_contextvars()


# Initialize with sensible defaults
configure_logging()
