"""DTOs for key records and custody reports."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from keycustody.application.dto.base import BaseDTO
from keycustody.core.errors import FormatError
from keycustody.core.keys.fingerprint import sha256_fingerprint
from keycustody.core.keys.key_types import (
    DecryptionFailed,
    Mismatch,
    SystemSshKeyRecord,
    VerificationResult,
)


@dataclass
class KeyRecordDTO(BaseDTO):
    """Public view of a key record; never carries the encrypted private key."""
    name: str
    key_type: str
    algorithm: str
    key_size: int
    fingerprint: Optional[str]
    sha256_fingerprint: Optional[str]
    public_key: str
    is_active: bool
    version: int
    usage_count: int
    description: Optional[str] = None
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: SystemSshKeyRecord) -> "KeyRecordDTO":
        try:
            sha256 = sha256_fingerprint(record.public_key)
        except FormatError:
            sha256 = None
        return cls(
            name=record.name,
            key_type=record.key_type,
            algorithm=record.algorithm,
            key_size=record.key_size,
            fingerprint=record.fingerprint,
            sha256_fingerprint=sha256,
            public_key=record.public_key,
            is_active=record.is_active,
            version=record.version,
            usage_count=record.usage_count,
            description=record.description,
            last_used_at=record.last_used_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def summary(self) -> Dict[str, Any]:
        """Row for list output"""
        return {
            "name": self.name,
            "type": self.key_type,
            "bits": self.key_size,
            "fingerprint": self.fingerprint,
            "active": self.is_active,
            "version": self.version,
            "usage_count": self.usage_count,
            "updated_at": self.updated_at,
        }


@dataclass
class VerificationDTO(BaseDTO):
    """Verification outcome with stored and derived fingerprints side by side"""
    name: str
    status: str
    consistent: bool
    stored_fingerprint: Optional[str] = None
    db_fingerprint: Optional[str] = None
    derived_fingerprint: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def from_result(
        cls, record: SystemSshKeyRecord, result: VerificationResult
    ) -> "VerificationDTO":
        dto = cls(
            name=record.name,
            status=result.status.value,
            consistent=result.ok,
            stored_fingerprint=record.fingerprint,
        )
        if isinstance(result, Mismatch):
            dto.db_fingerprint = result.db_fingerprint
            dto.derived_fingerprint = result.derived_fingerprint
        elif isinstance(result, DecryptionFailed):
            dto.reason = result.reason
        else:
            dto.db_fingerprint = result.fingerprint
            dto.derived_fingerprint = result.fingerprint
        return dto


@dataclass
class EnsureKeyDTO(BaseDTO):
    """Outcome of bootstrapping the admin key"""
    name: str
    action: str
    fingerprint: Optional[str]
    decrypts_with_current_secret: bool
    verification: str
    backup_error: Optional[str] = None
    warnings: Optional[List[str]] = None
