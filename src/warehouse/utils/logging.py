"""Logging configuration for the Warehouse domain."""

import logging
import os

import structlog


def configure_logging(level: str | None = None) -> None:
    """Configure structlog to render key/value events through stdlib logging.

    The level defaults to ``WAREHOUSE_LOG_LEVEL`` (INFO when unset).
    """
    level_name = (level or os.environ.get("WAREHOUSE_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(format="%(message)s", level=getattr(logging, level_name, logging.INFO))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("protean").setLevel(logging.WARNING)


def get_logger(name: str):
    return structlog.get_logger(name)
