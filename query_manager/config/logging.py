import logging
import sys
from typing import Any

import structlog

from .settings import Settings, settings


def _renderer(debug: bool) -> Any:
    # JSON for production, pretty printing for development
    if debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]


def create_log_handler(
    app_settings: Settings, stream: Any = None
) -> logging.Handler:
    """Handler that renders stdlib records the way structlog renders events."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[
                *_shared_processors(),
                structlog.stdlib.add_logger_name,
                structlog.stdlib.ExtraAdder(),
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(app_settings.debug),
            ],
        )
    )
    return handler


def setup_logging(app_settings: Settings | None = None) -> None:
    """Configure structured logging with structlog.

    structlog loggers (worker, controller, lifecycle) and stdlib loggers
    (store, service, handlers) share one output format. Fields passed to
    stdlib loggers with ``extra=`` are rendered as event keys, and both
    pick up the bound request or worker context.
    """
    app_settings = app_settings or settings
    level = getattr(logging, app_settings.log_level)

    logging.basicConfig(handlers=[create_log_handler(app_settings)], level=level)

    structlog.configure(
        processors=[
            *_shared_processors(),
            (
                structlog.processors.CallsiteParameterAdder(
                    parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
                )
                if app_settings.debug
                else structlog.processors.CallsiteParameterAdder(parameters=[])
            ),
            _renderer(app_settings.debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Add request-specific context to all log messages."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)


def bind_worker_context(worker_id: str) -> None:
    """Tag every log line emitted by a worker process with its id."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(worker_id=worker_id)
