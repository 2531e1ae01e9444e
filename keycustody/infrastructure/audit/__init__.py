"""Audit logging infrastructure"""

from .logger import AuditAction, AuditLogger, AuditResult, get_audit_logger

__all__ = [
    "AuditLogger",
    "AuditAction",
    "AuditResult",
    "get_audit_logger",
]
