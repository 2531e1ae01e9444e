"""Prometheus metrics for key custody operations"""

import time

from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    REGISTRY, generate_latest
)

from keycustody.core.config import settings


metrics_registry = REGISTRY

# ====================
# Service Information
# ====================

service_info = Info(
    "keycustody_service",
    "keycustody service information",
    registry=metrics_registry
)

service_info.info({
    "version": settings.app_version,
    "environment": settings.environment,
    "service": "keycustody"
})

# ====================
# Key Custody Metrics
# ====================

ssh_key_operations_total = Counter(
    "ssh_key_operations_total",
    "Total number of key custody operations",
    ["operation", "outcome"],
    registry=metrics_registry
)

ssh_key_generation_duration_seconds = Histogram(
    "ssh_key_generation_duration_seconds",
    "RSA keypair generation time in seconds",
    ["bits"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    registry=metrics_registry
)

ssh_key_verifications_total = Counter(
    "ssh_key_verifications_total",
    "Total number of key consistency verifications",
    ["result"],
    registry=metrics_registry
)

ssh_key_decryption_failures_total = Counter(
    "ssh_key_decryption_failures_total",
    "Total number of failed private key decryptions",
    ["source"],
    registry=metrics_registry
)

ssh_key_regeneration_jobs_in_progress = Gauge(
    "ssh_key_regeneration_jobs_in_progress",
    "Number of background key regenerations currently running",
    registry=metrics_registry
)

# ====================
# Logging Metrics
# ====================

log_messages_total = Counter(
    "log_messages_total",
    "Total number of log messages",
    ["level", "logger"],
    registry=metrics_registry
)

# ====================
# Audit Metrics
# ====================

audit_events_total = Counter(
    "audit_events_total",
    "Total number of audit events",
    ["action", "result"],
    registry=metrics_registry
)

# ====================
# Utility Functions
# ====================


def record_operation(operation: str, outcome: str) -> None:
    if settings.enable_metrics:
        ssh_key_operations_total.labels(operation=operation, outcome=outcome).inc()


class MetricsContext:
    """Context manager for timing an operation into a histogram"""

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time and settings.enable_metrics:
            duration = time.time() - self.start_time
            self.histogram.labels(**self.labels).observe(duration)


def get_metrics() -> bytes:
    """Generate metrics in Prometheus format"""
    return generate_latest(metrics_registry)
