"""Structured logging for wabridge.

Every component logs a message plus keyword context through structlog.
Production renders JSON lines, development a colored console. Values of
context keys that look like credentials are masked before rendering so
shared secrets and bearer tokens never reach the log sink.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.typing import EventDict, Processor, WrappedLogger

_configured = False

# Context keys whose values are masked in every log record
SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "auth_token",
        "n8n_auth_token",
        "shared_secret",
        "secret",
        "master_key",
        "x-wwea-secret",
        "x_wwea_secret",
        "nonce",
        "token",
    }
)

MASK = "***"


def mask_secrets(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """structlog processor replacing credential values with a mask."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = MASK
        elif key == "headers" and isinstance(event_dict[key], dict):
            event_dict[key] = {
                name: (MASK if name.lower() in SENSITIVE_KEYS else value)
                for name, value in event_dict[key].items()
            }
    return event_dict


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: "json" for production, "text" for a colored console.
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        mask_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if format.lower() == "json":
        renderer: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*shared, *renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def log_event(
    logger: structlog.stdlib.BoundLogger,
    level: str,
    message: str,
    **context: Any,
) -> None:
    """Emit a (level, message, context) record.

    Unknown level names fall back to info.

    Example:
        ```python
        log_event(logger, "warning", "Cache write failed", cache_key=key)
        ```
    """
    method = getattr(logger, level.lower(), None)
    if not callable(method):
        method = logger.info
    method(message, **context)


def bind_context(**kwargs: object) -> None:
    """Bind request-scoped values (vendor_id, request_id) to later records."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all request-scoped values. Call at the end of a request."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the request-scoped context."""
    structlog.contextvars.unbind_contextvars(*keys)


logger = get_logger("wabridge")
