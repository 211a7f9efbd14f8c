"""Structured logging configuration.

All log output goes to stderr: when the fleet runs as a stdio MCP server,
stdout carries protocol traffic and must never receive log lines.

Usage:
    from mcp_fleet.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("provider_started", provider_id="fs", tools=3)
"""

import logging
import sys
from typing import Any

import structlog


def setup_logging(level: int | str = logging.INFO, json_format: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Minimum log level (int or level name).
        json_format: Render JSON lines when True, human-readable console output otherwise.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    renderer: Any = structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries log through stdlib logging
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger bound to the given module name."""
    return structlog.get_logger(name)
