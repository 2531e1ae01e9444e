"""Application services.

Services orchestrate key custody operations by combining core key handling
with the key store and filesystem infrastructure.
"""

from keycustody.application.services.base import ServiceBase
from keycustody.application.services.key_rotation import (
    KeyRotationCoordinator,
    RegenerationReport,
)
from keycustody.application.services.admin_credentials import (
    AdminCredentialService,
    KeyInspection,
    build_cloud_init,
)
from keycustody.application.services.regeneration_jobs import (
    JobStatus,
    RegenerationJob,
    RegenerationJobManager,
)

__all__ = [
    "ServiceBase",
    "KeyRotationCoordinator",
    "RegenerationReport",
    "AdminCredentialService",
    "KeyInspection",
    "build_cloud_init",
    "JobStatus",
    "RegenerationJob",
    "RegenerationJobManager",
]
