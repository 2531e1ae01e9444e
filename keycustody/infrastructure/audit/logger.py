"""Structured audit trail for key custody actions"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from structlog.contextvars import get_contextvars

from keycustody.core.config import settings
from keycustody.infrastructure.logging_processors import REDACTED, SENSITIVE_KEYS


class AuditAction(str, Enum):
    """Audited custody actions"""
    GENERATE_KEY = "generate_key"
    ROTATE_SECRET = "rotate_secret"
    EXPORT_KEY = "export_key"
    REQUEST_CREDENTIAL = "request_credential"
    VERIFY_KEY = "verify_key"
    DEACTIVATE_KEY = "deactivate_key"


class AuditResult(str, Enum):
    """Result of audited action"""
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"
    ERROR = "error"


def _scrub(details: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: REDACTED if any(s in key.lower() for s in SENSITIVE_KEYS) else value
        for key, value in details.items()
    }


class AuditLogFormatter(logging.Formatter):
    """Formats audit records as one JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "action": getattr(record, "action", "unknown"),
            "result": getattr(record, "result", "unknown"),
            "actor": getattr(record, "actor", None),
            "resource": getattr(record, "resource", None),
            "resource_type": getattr(record, "resource_type", None),
            "correlation_id": getattr(record, "correlation_id", None),
            "duration_ms": getattr(record, "duration_ms", None),
            "details": _scrub(getattr(record, "details", {}) or {}),
            "error": getattr(record, "error", None)
        }

        log_data = {k: v for k, v in log_data.items() if v is not None}

        return json.dumps(log_data, default=str)


class AuditLogger:
    """Audit logger service"""

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: Optional[bool] = None,
        handler: Optional[logging.Handler] = None,
    ):
        self.log_dir = Path(log_dir) if log_dir is not None else settings.audit_log_dir
        self.enabled = settings.enable_audit_log if enabled is None else enabled
        self._handler = handler
        self._logger: Optional[logging.Logger] = None

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger(f"keycustody.audit.{id(self)}")
        logger.setLevel(logging.INFO)
        logger.propagate = False
        logger.handlers.clear()

        if not self.enabled:
            logger.addHandler(logging.NullHandler())
            return logger

        handler = self._handler
        if handler is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handler = TimedRotatingFileHandler(
                filename=self.log_dir / "audit.log",
                when="midnight",
                interval=1,
                backupCount=90,
                encoding="utf-8"
            )
        handler.setFormatter(AuditLogFormatter())
        logger.addHandler(handler)
        return logger

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = self._setup_logger()
        return self._logger

    def log(
        self,
        action: AuditAction,
        result: AuditResult,
        resource: Optional[str] = None,
        resource_type: str = "system_ssh_key",
        actor: Optional[str] = None,
        duration_ms: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log an audit event"""
        if result == AuditResult.SUCCESS:
            log_level = logging.INFO
        elif result == AuditResult.DENIED:
            log_level = logging.WARNING
        else:
            log_level = logging.ERROR

        context = get_contextvars()
        extra = {
            "action": action.value,
            "result": result.value,
            "actor": actor or context.get("actor"),
            "resource": resource,
            "resource_type": resource_type,
            "correlation_id": context.get("correlation_id"),
            "duration_ms": duration_ms,
            "details": details or {},
            "error": error
        }

        self.logger.log(log_level, f"{action.value} {result.value}", extra=extra)

        if settings.enable_metrics:
            from keycustody.infrastructure.metrics import audit_events_total
            audit_events_total.labels(action=action.value, result=result.value).inc()

    def log_success(self, action: AuditAction, resource: Optional[str] = None, **kwargs):
        self.log(action=action, result=AuditResult.SUCCESS, resource=resource, **kwargs)

    def log_failure(
        self,
        action: AuditAction,
        resource: Optional[str] = None,
        error: Optional[str] = None,
        **kwargs
    ):
        self.log(action=action, result=AuditResult.FAILURE, resource=resource, error=error, **kwargs)

    def log_denied(
        self,
        action: AuditAction,
        resource: Optional[str] = None,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        details = dict(details or {})
        if reason:
            details["denial_reason"] = reason
        self.log(action=action, result=AuditResult.DENIED, resource=resource, details=details, **kwargs)

    def log_error(self, action: AuditAction, error: str, resource: Optional[str] = None, **kwargs):
        self.log(action=action, result=AuditResult.ERROR, resource=resource, error=error, **kwargs)


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
