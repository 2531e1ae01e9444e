"""Repositories for database access."""
from .base import BaseRepository, IntegrityViolation, RepositoryError
from .system_ssh_key_repository import SystemSshKeyRepository

__all__ = [
    'BaseRepository',
    'IntegrityViolation',
    'RepositoryError',
    'SystemSshKeyRepository',
]
