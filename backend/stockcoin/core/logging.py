"""
Structured logging configuration using structlog.
Provides JSON-formatted logs for production and human-readable logs for development.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import cast
from uuid import uuid4

import structlog
from structlog.types import Processor

from stockcoin.core.config import get_settings


def configure_logging() -> None:
    """
    Configure structured logging for the distributor and tooling.

    In development mode, logs are formatted for human readability.
    In production mode, logs are JSON-formatted for log aggregation systems.
    """
    settings = get_settings()

    # Shared processors for both modes; merge_contextvars carries cycle_id
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.environment == "development":
        # Development: Human-readable colored output
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        # Production: JSON output for log aggregation
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging to use structlog
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )
    # web3 logs every RPC payload at DEBUG
    logging.getLogger("web3").setLevel(max(logging.INFO, getattr(logging, settings.log_level)))


@contextmanager
def bind_cycle_id(cycle_id: str | None = None) -> Iterator[str]:
    """
    Tag every log line emitted inside the block with ``cycle_id``.

    Task workers started with ``asyncio.gather`` or ``asyncio.to_thread``
    copy the current context, so their lines carry the same id.
    """
    cycle_id = cycle_id or uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(cycle_id=cycle_id):
        yield cycle_id


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance with the given name."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
