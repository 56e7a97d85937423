"""Structured diagnostics for clai.

Modules log through ``logging.getLogger(__name__)``; structlog renders the
records. Everything goes to stderr because stdout carries the answer (or the
``--json`` document).
"""

import logging
import sys
from typing import TextIO

import structlog

# chatty transport libraries stay at WARNING unless clai itself runs at DEBUG
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _renderer(json_output: bool, stream: TextIO) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    isatty = getattr(stream, "isatty", None)
    return structlog.dev.ConsoleRenderer(colors=bool(isatty and isatty()))


def configure_logging(
    level: str,
    json_output: bool = False,
    *,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Route stdlib and structlog records to one stderr handler.

    Args:
        level: Log level name from ``CLAI_LOG_LEVEL``; unknown names mean WARNING.
        json_output: One JSON object per record (``CLAI_LOG_JSON``).
        verbose: ``--verbose`` on the command line; lowers the level to INFO.
        stream: Destination, stderr by default.
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)
    if verbose:
        log_level = min(log_level, logging.INFO)
    target = stream or sys.stderr

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(target)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output, target),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def bind_context(**kwargs: object) -> None:
    """Attach request fields (mode, provider) to every record logged afterwards."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
