"""Structured logging setup.

Library modules only call ``structlog.get_logger(__name__)``; the CLI calls
:func:`setup_logging` once at start-up. Secrets are never passed to a
logger.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

LEVEL_ENV = "OTPKEEP_LOG_LEVEL"
FORMAT_ENV = "OTPKEEP_LOG_FORMAT"


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog to write to stderr.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Defaults to ``$OTPKEEP_LOG_LEVEL``
            or WARNING.
        fmt: ``"text"`` for coloured console output or ``"json"``. Defaults to
            ``$OTPKEEP_LOG_FORMAT`` or text.
    """
    level = level or os.environ.get(LEVEL_ENV, "WARNING")
    fmt = fmt or os.environ.get(FORMAT_ENV, "text")
    log_level = getattr(logging, level.upper(), logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
