"""Structured logging for addon_sync runs."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


LOGGER_PREFIX = "addon_sync"


def _renderer(json_logs: bool) -> Any:
    """JSON lines for CI and log shipping, a console renderer on terminals."""
    if json_logs or not sys.stderr.isatty():
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(level: int | str = "INFO", *, json_logs: bool = False) -> None:
    """Route structlog events through stdlib logging to stderr.

    Args:
        level: Level name or number for the `addon_sync` loggers
        json_logs: Always emit JSON, even on a terminal
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        handlers=[logging.StreamHandler(sys.stderr)],
        format="%(message)s",
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _renderer(json_logs),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger named `addon_sync.<module>` whatever form `name` comes in."""
    module = name.removeprefix(f"{LOGGER_PREFIX}.")
    return structlog.get_logger(f"{LOGGER_PREFIX}.{module}")
