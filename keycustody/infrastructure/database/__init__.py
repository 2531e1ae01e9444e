"""Database infrastructure module."""
from .connection import DatabaseConnection
from .unit_of_work import UnitOfWork
from .key_store import SqlKeyStore

__all__ = [
    'DatabaseConnection',
    'UnitOfWork',
    'SqlKeyStore',
]
