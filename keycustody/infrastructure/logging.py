import logging
import sys
from typing import Any
import structlog
from structlog.types import Processor

from keycustody.core.config import settings
from keycustody.infrastructure.logging_processors import (
    add_service_context,
    add_operation_context,
    sanitize_sensitive_data,
    add_caller_info,
    format_exception_info,
    set_log_severity,
    MetricsProcessor
)


def _passthrough(logger: Any, method_name: str, event_dict: Any) -> Any:
    return event_dict


def setup_logging(log_level: str = None, log_format: str = None) -> None:
    level = log_level or settings.log_level
    fmt = log_format or settings.log_format
    timestamper = structlog.processors.TimeStamper(fmt="iso")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,

        add_service_context,
        add_operation_context,

        structlog.processors.add_log_level,
        set_log_severity,

        add_caller_info if settings.is_development else _passthrough,

        format_exception_info,

        timestamper,

        # Must stay last before rendering
        sanitize_sensitive_data,

        MetricsProcessor(),
    ]

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout is reserved for command output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level))

    for logger_name in ["sqlalchemy.engine", "aiosqlite", "asyncio"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
