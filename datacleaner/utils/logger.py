"""
Structured Logging Configuration
================================

structlog setup for the cleaning service.

Every event carries ``service`` and ``version``. Credential fields are masked
and raw model output is clipped before rendering, since remote failures log
the provider's response body.
"""

import logging
import sys
from typing import Any, Optional

import structlog

from datacleaner import __version__
from datacleaner.config.settings import Settings, get_settings

SERVICE_NAME = "datacleaner"

SECRET_FIELDS = frozenset({"api_key", "authorization", "openrouter_api_key"})
RAW_TEXT_FIELDS = frozenset({"raw_response", "raw_text", "content", "blob_preview"})
MAX_RAW_CHARS = 2000


def add_service_info(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def mask_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace credential values with their last four characters."""
    for key in SECRET_FIELDS & event_dict.keys():
        value = event_dict[key]
        if value:
            text = str(value)
            event_dict[key] = f"***{text[-4:]}" if len(text) > 8 else "***"
    return event_dict


def clip_raw_text(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Shorten model/provider payloads so one failed chunk cannot flood the log."""
    for key in RAW_TEXT_FIELDS & event_dict.keys():
        value = event_dict[key]
        if isinstance(value, str) and len(value) > MAX_RAW_CHARS:
            event_dict[key] = f"{value[:MAX_RAW_CHARS]}... [{len(value) - MAX_RAW_CHARS} more chars]"
    return event_dict


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structured logging for the application.

    JSON lines in production (non-ASCII kept readable), coloured console
    output otherwise.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_info,
        mask_secrets,
        clip_raw_text,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        renderer: list[Any] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*shared_processors, *renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a module; pass ``__name__``."""
    return structlog.get_logger(name)
