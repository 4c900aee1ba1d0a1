"""Structured logging for the Portfolio Agent.

All output goes to stderr through structlog so log lines never mix with
the agent's answers on stdout. Key/value events, with the session and
request ids merged in from context variables.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor


# Libraries that log every request at INFO
NOISY_LIBRARIES = ("httpx", "httpcore", "urllib3")


def _renderer(json_output: bool) -> list[Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json_output: Render JSON lines instead of the console format
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *_renderer(json_output),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Logger for ``name``, optionally with values bound up front."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger


def bind_context(**context: Any) -> None:
    """Attach values to every log event in the current task."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context(*keys: str) -> None:
    """Drop the given context keys, or all of them when none are named."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
