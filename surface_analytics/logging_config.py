"""
Logging Configuration Module

Configures structlog for the collector. Both the ingestion service and the
agent log through ``structlog.get_logger()``; this module only decides how
those records are rendered.
"""

import logging
import sys

import structlog

from . import config


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name, defaults to ``SURFACE_LOG_LEVEL``.
        json_output: Render JSON lines instead of console output,
            defaults to ``SURFACE_LOG_JSON``.
    """
    level_name = (level or config.LOG_LEVEL).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    if json_output is None:
        json_output = config.LOG_JSON

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # uvicorn's access log duplicates our per-batch line
    if numeric_level > logging.DEBUG:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
