"""Custom structlog processors for key custody logging"""

import socket
import sys
import traceback
from typing import Any, Dict
from structlog.types import EventDict, WrappedLogger
from structlog.contextvars import get_contextvars

SENSITIVE_KEYS = frozenset({
    "password", "token", "secret", "passphrase", "authorization",
    "private_key", "pem", "plaintext", "api_key", "bearer"
})

REDACTED = "***REDACTED***"


def add_service_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level context to logs"""
    event_dict["service"] = "keycustody"

    from keycustody.core.config import settings
    event_dict["environment"] = settings.environment

    try:
        event_dict["hostname"] = socket.gethostname()
    except OSError:
        pass

    return event_dict


def add_operation_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add custody operation context from contextvars"""
    context = get_contextvars()

    for key in ("correlation_id", "operation", "key_name", "job_id", "actor"):
        if key in context:
            event_dict[key] = context[key]

    return event_dict


def _is_sensitive(key: str) -> bool:
    lower_key = key.lower()
    return any(sensitive in lower_key for sensitive in SENSITIVE_KEYS)


def sanitize_sensitive_data(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask secrets and key material"""

    def sanitize_dict(d: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = {}
        for key, value in d.items():
            if isinstance(key, str) and _is_sensitive(key):
                sanitized[key] = REDACTED
            elif isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    sanitize_dict(item) if isinstance(item, dict) else item
                    for item in value
                ]
            elif isinstance(value, (bytes, bytearray)) and b"PRIVATE KEY" in value:
                sanitized[key] = REDACTED
            elif isinstance(value, str) and "PRIVATE KEY-----" in value:
                sanitized[key] = REDACTED
            else:
                sanitized[key] = value

        return sanitized

    return sanitize_dict(event_dict)


def add_caller_info(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add caller location information for debugging"""
    from keycustody.core.config import settings
    if not settings.is_development:
        return event_dict

    import inspect

    frame = None
    for record in inspect.stack()[1:]:
        module = inspect.getmodule(record.frame)
        if module and not module.__name__.startswith(("structlog", "logging")):
            frame = record
            break

    if frame:
        event_dict["caller"] = {
            "filename": frame.filename.split("/")[-1],
            "function": frame.function,
            "lineno": frame.lineno
        }

    return event_dict


def format_exception_info(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Format exception information for better readability"""
    exc_info = event_dict.pop("exc_info", None)
    if exc_info:
        if isinstance(exc_info, tuple):
            exc_type, exc_value, exc_tb = exc_info
        elif isinstance(exc_info, BaseException):
            exc_type, exc_value, exc_tb = type(exc_info), exc_info, exc_info.__traceback__
        else:
            exc_type, exc_value, exc_tb = sys.exc_info()

        if exc_type:
            event_dict["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb)
            }

    return event_dict


def set_log_severity(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Set severity field for log aggregation systems"""
    level_map = {
        "debug": "DEBUG",
        "info": "INFO",
        "warning": "WARNING",
        "error": "ERROR",
        "critical": "CRITICAL"
    }

    if "level" in event_dict:
        event_dict["severity"] = level_map.get(event_dict["level"], "INFO")

    return event_dict


class MetricsProcessor:
    """Processor that counts log messages by level"""

    def __call__(
        self, logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        # Lazy import to avoid circular dependency
        from keycustody.infrastructure.metrics import log_messages_total

        if "level" in event_dict:
            log_messages_total.labels(
                level=event_dict["level"],
                logger=getattr(logger, "name", "unknown")
            ).inc()

        return event_dict
