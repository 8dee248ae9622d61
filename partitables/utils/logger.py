"""
Structured logging setup for partitables.

Configures structlog once for the library and hands out bound loggers.
"""

import logging
import sys
from typing import Optional

import structlog

from partitables.config.settings import get_settings

_configured = False


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structlog and the stdlib root handler.

    Args:
        level: Log level name, defaults to the configured LOG_LEVEL
        log_format: "json" or "text", defaults to the configured LOG_FORMAT
    """
    global _configured

    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL.value).upper()
    log_format = log_format or settings.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, configuring logging on first use."""
    if not _configured:
        setup_logging()
    return structlog.get_logger(name)
