import logging
import sys
from typing import Any

import structlog

from .settings import Settings, settings as default_settings

HANDLER_NAME = "downloader"


def _shared_processors(settings: Settings) -> list[Any]:
    """Processors applied to structlog events and stdlib records alike."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.debug:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
            )
        )
    return processors


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and render stdlib logging through the same pipeline.

    Worker code logs through structlog with bound context; store, service and
    route modules use ``logging.getLogger(__name__)`` with ``extra=`` fields,
    which end up as key-value pairs in the same output.
    """
    settings = settings or default_settings
    level = getattr(logging, settings.log_level)
    shared = _shared_processors(settings)

    # Pretty console output in development, JSON lines otherwise
    if settings.debug:
        final_processors: list[Any] = [structlog.dev.ConsoleRenderer()]
    else:
        final_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*shared, structlog.stdlib.ExtraAdder()],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *final_processors,
            ],
        )
    )

    # Replace our own handler on repeated setup, leave others (pytest, uvicorn)
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Bind request-scoped fields to every log line until the next request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)
