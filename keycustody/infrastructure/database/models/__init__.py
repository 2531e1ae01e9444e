"""Database models."""
from .base import Base, TimestampedModel
from .system_ssh_key import SystemSshKeyModel

__all__ = [
    'Base',
    'TimestampedModel',
    'SystemSshKeyModel',
]
