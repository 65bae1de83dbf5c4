"""Structured logger whose first processor is the RGPD event guard.

Every log call is checked by ``assert_safe`` before any renderer runs, so a
payload carrying an email, a token or free text raises ``LogGuardViolation``
at the call site instead of reaching stdout. Positional ``%s`` arguments are
rejected as well: fields must be passed as keywords so the guard can see them.

Usage:
    from src.security.safe_log import get_logger

    logger = get_logger(__name__)
    logger.info("consent.granted", purpose="ai_processing")
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog

from src.config import settings
from src.security.log_guard import assert_safe


def guard_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor running the event guard over the whole event dict."""
    fields = {k: v for k, v in event_dict.items() if k != "event"}
    assert_safe(event_dict.get("event", ""), fields)
    return event_dict


def shared_processors() -> list[Any]:
    """Processor chain used by wrapped loggers and by the global structlog config."""
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    return [
        guard_processor,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        renderer,
    ]


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a guarded structlog logger backed by the stdlib logger ``name``."""
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=shared_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
    )
