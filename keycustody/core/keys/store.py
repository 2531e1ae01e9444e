"""Key store interface with an in-memory implementation"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from keycustody.core.errors import (
    ConcurrentModificationError,
    KeyAlreadyExistsError,
    KeyNotFoundError,
)
from keycustody.core.keys.key_types import KeyMaterialUpdate, SystemSshKeyRecord
from keycustody.infrastructure.logging import get_logger

logger = get_logger(__name__)


class KeyStore(ABC):
    """Persistence for system SSH key records.

    At most one record per name is active. Writes to key material are
    conditional on the record version the caller read.
    """

    @abstractmethod
    async def get_active_by_name(self, name: str) -> Optional[SystemSshKeyRecord]:
        pass

    @abstractmethod
    async def get_latest_by_name(self, name: str) -> Optional[SystemSshKeyRecord]:
        """Most recent record for a name, active or not."""
        pass

    @abstractmethod
    async def create(self, record: SystemSshKeyRecord) -> SystemSshKeyRecord:
        """Insert a new active record.

        Raises:
            KeyAlreadyExistsError: an active record with the same name exists
        """
        pass

    @abstractmethod
    async def update_active(
        self, name: str, update: KeyMaterialUpdate, expected_version: int
    ) -> SystemSshKeyRecord:
        """Replace key material of the active record in one write.

        Raises:
            KeyNotFoundError: no active record with that name
            ConcurrentModificationError: the record is no longer at expected_version
        """
        pass

    @abstractmethod
    async def list_by_type(
        self, key_type: str, include_inactive: bool = False
    ) -> List[SystemSshKeyRecord]:
        pass

    @abstractmethod
    async def deactivate(self, name: str) -> SystemSshKeyRecord:
        pass

    @abstractmethod
    async def reactivate(self, name: str) -> SystemSshKeyRecord:
        """Re-activate the most recent inactive record for a name."""
        pass

    @abstractmethod
    async def record_usage(self, name: str) -> None:
        pass


class InMemoryKeyStore(KeyStore):
    """Process-local key store, used by tests and dry runs"""

    def __init__(self):
        self._records: Dict[str, List[SystemSshKeyRecord]] = {}
        self._next_id = 1

    def _active(self, name: str) -> Optional[SystemSshKeyRecord]:
        for record in self._records.get(name, []):
            if record.is_active:
                return record
        return None

    async def get_active_by_name(self, name: str) -> Optional[SystemSshKeyRecord]:
        record = self._active(name)
        return record.copy() if record else None

    async def get_latest_by_name(self, name: str) -> Optional[SystemSshKeyRecord]:
        records = self._records.get(name)
        return records[-1].copy() if records else None

    async def create(self, record: SystemSshKeyRecord) -> SystemSshKeyRecord:
        if self._active(record.name) is not None:
            raise KeyAlreadyExistsError(record.name)

        now = datetime.now(timezone.utc)
        stored = record.copy()
        stored.id = self._next_id
        stored.version = 1
        stored.is_active = True
        stored.created_at = now
        stored.updated_at = now
        self._next_id += 1

        self._records.setdefault(record.name, []).append(stored)
        logger.debug("key_record_created", key_name=record.name, record_id=stored.id)
        return stored.copy()

    async def update_active(
        self, name: str, update: KeyMaterialUpdate, expected_version: int
    ) -> SystemSshKeyRecord:
        record = self._active(name)
        if record is None:
            raise KeyNotFoundError(name)
        if record.version != expected_version:
            raise ConcurrentModificationError(name, expected_version)

        record.public_key = update.public_key
        record.private_key_encrypted = update.private_key_encrypted
        record.fingerprint = update.fingerprint
        if update.key_size is not None:
            record.key_size = update.key_size
        record.version += 1
        record.updated_at = datetime.now(timezone.utc)
        return record.copy()

    async def list_by_type(
        self, key_type: str, include_inactive: bool = False
    ) -> List[SystemSshKeyRecord]:
        return [
            record.copy()
            for records in self._records.values()
            for record in records
            if record.key_type == key_type and (include_inactive or record.is_active)
        ]

    async def deactivate(self, name: str) -> SystemSshKeyRecord:
        record = self._active(name)
        if record is None:
            raise KeyNotFoundError(name)
        record.is_active = False
        record.version += 1
        record.updated_at = datetime.now(timezone.utc)
        return record.copy()

    async def reactivate(self, name: str) -> SystemSshKeyRecord:
        if self._active(name) is not None:
            raise KeyAlreadyExistsError(name)
        records = self._records.get(name)
        if not records:
            raise KeyNotFoundError(name)
        record = records[-1]
        record.is_active = True
        record.version += 1
        record.updated_at = datetime.now(timezone.utc)
        return record.copy()

    async def record_usage(self, name: str) -> None:
        record = self._active(name)
        if record is None:
            raise KeyNotFoundError(name)
        record.usage_count += 1
        record.last_used_at = datetime.now(timezone.utc)
