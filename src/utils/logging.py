"""Bridge logging config

Logging is configured when this module is imported. structlog renders human-readable lines when
APP_ENVIRONMENT='local' and JSON lines everywhere else.

```
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

with LogContext(event_name="phone.callee_missed", call_id="123"):
    logger.info("Processing event")  # Includes event_name and call_id
```

Python's standard `logging` module is routed through the same processors so that uvicorn, httpx and
other library loggers share the format and the bound context.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog
import structlog.contextvars

from src.utils.config import get_app_environment


def _is_local_environment() -> bool:
    return get_app_environment() == "local"


def _get_log_renderer() -> structlog.types.Processor:
    """Pick the final renderer.

    LOG_RENDERER=console|json overrides the environment-based default.
    """
    log_renderer = os.getenv("LOG_RENDERER", "").lower()
    if log_renderer == "console":
        use_console = True
    elif log_renderer == "json":
        use_console = False
    else:
        use_console = _is_local_environment()

    if use_console:
        return structlog.dev.ConsoleRenderer(
            colors=True,
            pad_event=0,
            force_colors=False,
            repr_native_str=False,
            exception_formatter=structlog.dev.plain_traceback,
            sort_keys=True,
            event_key="message",
        )
    return structlog.processors.JSONRenderer()


def _common_processors() -> list[structlog.types.Processor]:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.contextvars.merge_contextvars,
        structlog.processors.EventRenamer("message"),
        structlog.stdlib.filter_by_level,  # Must come after add_log_level
    ]


def configure_logging() -> None:
    """Configure structlog and the stdlib root logger for the current environment."""
    common_processors = _common_processors()

    structlog.configure(
        processors=common_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib loggers do their own level filtering and have no structlog logger for filter_by_level
    foreign_processors = [p for p in common_processors if p != structlog.stdlib.filter_by_level]
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_get_log_renderer(),
            foreign_pre_chain=foreign_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(stream_handler)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    numeric_log_level = getattr(logging, log_level, logging.INFO)
    root_logger.setLevel(numeric_log_level)

    if numeric_log_level <= logging.DEBUG:
        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
            uvicorn_logger = logging.getLogger(logger_name)
            if uvicorn_logger.level > numeric_log_level:
                uvicorn_logger.setLevel(numeric_log_level)

    # httpx logs every request at INFO, including FileMaker session URLs
    logging.getLogger("httpx").setLevel(max(numeric_log_level, logging.WARNING))


configure_logging()


def add_log_context(**kwargs: Any) -> None:
    """Bind values to every subsequent log line in the current async context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_log_context() -> None:
    """Clear all values from the logging context.

    Useful for ensuring a clean context at the start of a new request.
    """
    structlog.contextvars.clear_contextvars()


LogContext = structlog.contextvars.bound_contextvars


def get_logger(name: str, **kwargs: Any) -> structlog.BoundLogger:
    """Get a logger instance. Wrapper around structlog.get_logger for convenience.

    Args:
        name: Logger name (usually __name__ from the calling module)
    """
    return structlog.get_logger(name, **kwargs)


def get_uvicorn_log_config() -> dict[str, Any]:
    """Uvicorn logging configuration that renders access and error logs like application logs."""
    handler = {"handlers": ["default"], "level": "INFO", "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": _get_log_renderer(),
                "foreign_pre_chain": [
                    structlog.stdlib.add_log_level,
                    structlog.stdlib.add_logger_name,
                    structlog.processors.TimeStamper(fmt="iso"),
                    structlog.processors.EventRenamer("message"),
                ],
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "": dict(handler),
            "uvicorn": dict(handler),
            "uvicorn.access": dict(handler),
            "uvicorn.error": dict(handler),
        },
    }
