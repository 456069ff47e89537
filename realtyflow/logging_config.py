"""
structlog setup shared by the API, background tasks and Celery workers.

Every event carries `service` and `environment` so booking logs can be
filtered in aggregation. Debug mode renders to the console; otherwise
each event is one JSON line on stdout.
"""

import logging
import sys
from typing import Any
import structlog
from realtyflow.config import config

SERVICE_NAME = "realtyflow"

# HTTP clients used for Google Calendar and Twilio log each request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "twilio.http_client", "urllib3")


def add_service_context(logger, method_name, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("environment", config.ENVIRONMENT)
    return event_dict


def build_processors(debug: bool) -> list:
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(level: str = None, debug: bool = None):
    """Route stdlib logging to stdout and configure structlog over it."""
    level_name = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=build_processors(config.DEBUG if debug is None else debug),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> Any:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("meeting_created", meeting_id=12, agent="Jane Doe")
    """
    return structlog.get_logger(name)


configure_logging()

logger = get_logger(SERVICE_NAME)
