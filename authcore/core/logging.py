"""
Logging configuration.

Services log through structlog with key/value events:

    logger = structlog.get_logger()
    logger.warning("token_revocation_failed", user_id=str(user_id))

Call ``configure_logging()`` once at startup. ``LOG_FORMAT=json`` renders
one JSON object per line (production), ``text`` renders colourless
console output (development, tests).
"""

import logging
import sys
from typing import Any

import structlog

from .config import Settings, settings as default_settings


def add_app_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor adding application name and environment."""
    event_dict.setdefault("app", default_settings.app_name)
    event_dict.setdefault("env", default_settings.environment)
    return event_dict


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger."""
    settings = settings or default_settings
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
