"""
Structured logging configuration using structlog.

Component loggers are plain stdlib loggers; structlog renders every record,
with the swap session bound through contextvars. Logs go to stderr so the
CLI's step table on stdout stays readable.
"""

import logging
import sys
from typing import Optional, TextIO

import structlog

from .config import settings


def setup_logging(
    log_level: Optional[str] = None,
    *,
    json_output: Optional[bool] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Override log level (default: from settings.log_level)
        json_output: JSON lines instead of console output (default: settings.log_json)
        stream: Where log lines go (default: stderr)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    as_json = settings.log_json if json_output is None else json_output
    stream = stream or sys.stderr

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if as_json:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # The HTTP telemetry sink would otherwise log every batch request
    logging.getLogger("httpx").setLevel(logging.WARNING)


def bind_session(session_id: str) -> None:
    """Attach the swap session id to every log line emitted in this context."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(swap_session=session_id)
