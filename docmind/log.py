"""Structured logging setup shared by the web app and scripts."""
import logging
import sys

import structlog

from docmind import config


def configure_logging(level: str = None, json: bool = True) -> None:
    """Configure stdlib logging and structlog.

    Args:
        level: Log level name (default from config.LOG_LEVEL)
        json: Render JSON lines; when False use the human-readable console renderer
    """
    level = (level or config.LOG_LEVEL).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
