"""Structured logging configuration using structlog.

Request-scoped fields live in structlog's contextvars store, so every
entry emitted while a request is in flight carries them, including
records from stdlib loggers (uvicorn, sqlalchemy, the auth module):
- request_id: Correlation ID (also returned as X-Request-ID)
- user_id: Authenticated viewer, once known
- path / method: Raw request path (never the query string) and HTTP method

Usage:
    from courier.logging import get_logger

    logger = get_logger(__name__)
    logger.info("message_sent", thread_id=str(thread_id), seq=seq)
"""

import logging
import sys

import structlog
from structlog.contextvars import (
    bind_contextvars,
    clear_contextvars,
    get_contextvars,
    merge_contextvars,
)

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Route structlog and stdlib logging through one renderer on stdout.

    Args:
        json_format: JSON lines if True, the colored console renderer otherwise.
        level: Root log level.
    """
    shared_processors = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind request fields for the current context.

    Fields passed as None are left as they were, so the viewer can be
    added once auth has run without repeating the rest.
    """
    fields = {"request_id": request_id, "user_id": user_id, "path": path, "method": method}
    bind_contextvars(**{key: value for key, value in fields.items() if value is not None})


def clear_request_context() -> None:
    clear_contextvars()


def get_request_id() -> str | None:
    """Request ID bound for the current context, if any."""
    return get_contextvars().get("request_id")
