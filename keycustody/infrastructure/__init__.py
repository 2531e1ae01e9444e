"""Infrastructure layer for keycustody."""
from keycustody.infrastructure.exceptions import (
    InfrastructureError,
    DatabaseError,
    FilesystemError,
)

__all__ = [
    'InfrastructureError',
    'DatabaseError',
    'FilesystemError',
]
