"""
Structured logging for schemashift.

Manifesto:
    Export and replay runs touch thousands of objects across several worker
    threads. Plain text logs make it impossible to answer "which unit failed
    in which pass". Every module logs dotted event names with keyword
    fields through structlog, so a run can be filtered by ``run_id``,
    ``bucket`` or ``target`` after the fact.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="schemashift")
            │
            ▼
        structlog processor chain:
          1. TimeStamper (ISO, UTC)
          2. merge_contextvars       (run_id, bucket, ... from LogContext)
          3. add_log_level (logger name bound by get_logger)
          4. service metadata
          5. JSONRenderer  (non-TTY)  |  ConsoleRenderer (TTY)

        logger = get_logger(__name__)
        logger.info("apply.pass_complete", bucket="13_Programmability", progressed=4)

Examples:
    >>> from schemashift.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> with LogContext(run_id="export-1"):
    ...     logger.info("export.started", workers=4)

Tags:
    logging, structlog, observability, schemashift
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "schemashift"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "schemashift",
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_service_metadata,
    ]

    renderer: Processor
    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # Re-configuration must reach module-level loggers created at import
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``).

    The name is bound as the ``logger`` field; print loggers carry no name
    of their own.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger=name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs of this thread."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(run_id="apply-20260118", bucket="20_Data"):
            logger.info("constraints.suspended")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


@contextmanager
def log_step(step: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """Log the start (DEBUG) and end (INFO) of a step with its duration.

    The yielded dict can be filled with extra fields (row counts, totals)
    that are added to the completion event.
    """
    logger = get_logger("schemashift.step")
    extra: dict[str, Any] = {}
    logger.debug(f"{step}.start", **fields)
    started = time.perf_counter()
    try:
        yield extra
    except Exception:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.error(f"{step}.failed", duration_ms=duration_ms, **fields, **extra)
        raise
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info(f"{step}.end", duration_ms=duration_ms, **fields, **extra)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "LogContext",
    "log_step",
]
