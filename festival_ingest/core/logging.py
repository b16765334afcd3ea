"""
Logging configuration for Festival Ingest.

Structured logging via structlog. Pipeline runs bind a small set of
request-scoped fields (session id, operation, source url) into the
contextvars store so every event emitted while the run is active carries
them without passing loggers around.
"""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog.

    Args:
        json_logs: If True, output JSON format (for production).
                   If False, output colored console format (for development).
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Libraries (httpx, sqlalchemy) log through stdlib
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )


@contextmanager
def bind_pipeline_context(
    operation: str,
    session_id: str | None = None,
    **fields: Any,
) -> Iterator[str]:
    """Bind pipeline-scoped fields for the duration of a run.

    Yields the session id (generated when the caller has none).
    """
    run_id = session_id or str(uuid.uuid4())[:8]
    tokens = structlog.contextvars.bind_contextvars(
        session_id=run_id,
        operation=operation,
        **fields,
    )
    try:
        yield run_id
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
