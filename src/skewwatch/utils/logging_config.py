"""Structured logging configuration for the skew monitor."""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog


def setup_logging(
    level: str = "INFO",
    component: Optional[str] = None,
    log_format: str = "console",
) -> structlog.BoundLogger:
    """Configure line-oriented structured logging on stderr and return a bound logger."""

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="ISO"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger("skewwatch")
    if component:
        logger = logger.bind(component=component)
    return logger


def get_logger(name: str, host: Optional[str] = None) -> structlog.BoundLogger:
    logger = structlog.get_logger(name)
    if host:
        logger = logger.bind(host=host)
    return logger
