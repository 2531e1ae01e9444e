"""Infrastructure layer exceptions."""


class InfrastructureError(Exception):
    """Base infrastructure error."""
    pass


class DatabaseError(InfrastructureError):
    """Database operation error."""
    pass


class FilesystemError(InfrastructureError):
    """Filesystem operation error."""
    pass
