import logging
from typing import Optional

import structlog

from erp.config import settings


def _add_app_context(logger, method_name, event_dict):
    event_dict.setdefault("app", settings.APP_NAME)
    event_dict.setdefault("env", settings.ENVIRONMENT)
    return event_dict


def setup_logging(level: Optional[str] = None):
    """Configure structlog once per process.

    Console output in development, one JSON object per line elsewhere.
    Exceptions logged with exc_info keep their traceback through
    ``format_exc_info``.
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_app_context,
    ]
    if settings.ENVIRONMENT == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())

    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
