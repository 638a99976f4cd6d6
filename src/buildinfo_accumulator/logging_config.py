"""Structured logging for fragment writes, loads, consolidation and purges.

Every event carries key/value context, e.g.:

  {"event": "fragment_saved", "build": "api/42", "kind": "module", "path": "..."}

Each CLI invocation is one CI step acting on one build, so the CLI binds the
build label once with ``bind_build_context`` and every event emitted during
that step carries it. CI log collectors usually want JSON lines
(``BUILDINFO_LOG_FORMAT=json``); a terminal gets the console renderer.

Logs go to stderr: the CLI writes the consolidated document to stdout.

Usage:
    from buildinfo_accumulator.logging_config import setup_logging, get_logger

    setup_logging(log_format="json", log_level="DEBUG")
    bind_build_context(identity)
    logger = get_logger(__name__)
    logger.info("fragment_saved", kind="module")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

from buildinfo_accumulator.schemas import BuildIdentity

LOG_FORMAT_ENV_VAR = "BUILDINFO_LOG_FORMAT"
LOG_LEVEL_ENV_VAR = "BUILDINFO_LOG_LEVEL"
LOG_FORMATS = ("console", "json")


def setup_logging(
    log_format: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structured logging for one process.

    Args:
        log_format: "console" or "json". Reads from BUILDINFO_LOG_FORMAT
                    if not provided.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Reads from BUILDINFO_LOG_LEVEL if not provided.

    Raises:
        ValueError: If the format or level is not recognized
    """
    fmt = (log_format or os.environ.get(LOG_FORMAT_ENV_VAR, "console")).lower()
    level_name = (log_level or os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")).upper()

    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format {fmt!r}, expected one of {', '.join(LOG_FORMATS)}")
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level {level_name!r}")

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        # Loggers are not cached: the CLI and tests may swap stderr between runs.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def bind_build_context(identity: BuildIdentity) -> None:
    """Attach the build label to every event logged from this context."""
    structlog.contextvars.bind_contextvars(build=identity.label())


def clear_build_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
