"""structlog setup for the engine, plus helpers that tag log lines with a project scope."""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor

from kag.config import KagSettings, get_settings


def add_severity(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mirror the level as ``severity`` for log collectors that key on it."""
    event_dict["severity"] = method_name.upper()
    return event_dict


def configure_logging(settings: Optional[KagSettings] = None, stream: Optional[TextIO] = None) -> None:
    """
    Route structlog through stdlib logging on ``stream`` (stdout by default).

    ``log_format="json"`` renders one JSON object per line; dev mode or any
    other format uses the plain console renderer.
    """
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    if settings.log_format == "json" and not settings.dev_mode:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_severity,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_scope(project_id: str, account_scope_id: str) -> None:
    """Bind the (project, account) scope to every log line in this context."""
    structlog.contextvars.bind_contextvars(
        project_id=project_id,
        account_scope_id=account_scope_id,
    )


def clear_scope() -> None:
    structlog.contextvars.unbind_contextvars("project_id", "account_scope_id")
