"""
Logging — structlog configuration.

Configured once at process start (see convergent.api / __main__). Modules ask for
a logger via get_logger(__name__) and log event-style messages with key/value
context:

    log = get_logger(__name__)
    log.info("order.created", order_id=order.order_id, status=order.status.value)
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(json_output: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog for the whole process.

    Args:
        json_output: JSON lines when True, colored console output otherwise.
        log_level: DEBUG, INFO, WARNING or ERROR.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # Quiet third-party chatter
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger, typically get_logger(__name__)."""
    return structlog.get_logger(name)


__all__ = ("configure_logging", "get_logger")
