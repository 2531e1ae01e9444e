"""KeyStore backed by SQLAlchemy."""
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from keycustody.core.errors import (
    ConcurrentModificationError,
    KeyAlreadyExistsError,
    KeyCustodyError,
    KeyNotFoundError,
    KeyStoreError,
)
from keycustody.core.keys.key_types import KeyMaterialUpdate, SystemSshKeyRecord
from keycustody.core.keys.store import KeyStore
from keycustody.infrastructure.database.connection import DatabaseConnection
from keycustody.infrastructure.database.models.system_ssh_key import SystemSshKeyModel
from keycustody.infrastructure.database.repositories.base import IntegrityViolation
from keycustody.infrastructure.database.unit_of_work import UnitOfWork
from keycustody.infrastructure.logging import get_logger

logger = get_logger(__name__)


def to_record(model: SystemSshKeyModel) -> SystemSshKeyRecord:
    return SystemSshKeyRecord(
        id=model.id,
        name=model.name,
        key_type=model.key_type,
        public_key=model.public_key,
        private_key_encrypted=model.private_key_encrypted,
        fingerprint=model.fingerprint,
        algorithm=model.algorithm,
        key_size=model.key_size,
        is_active=model.is_active,
        description=model.description,
        version=model.version,
        usage_count=model.usage_count,
        last_used_at=model.last_used_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SqlKeyStore(KeyStore):
    """Key store over the ``system_ssh_keys`` table.

    Every call runs in its own transaction.
    """

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        try:
            async with self.connection.get_session() as session:
                async with UnitOfWork(session) as uow:
                    yield uow
        except KeyCustodyError:
            raise
        except IntegrityError as e:
            raise IntegrityViolation(str(e.orig)) from e
        except SQLAlchemyError as e:
            logger.error("key_store_error", error=str(e))
            raise KeyStoreError(f"Key store operation failed: {e}") from e

    async def _refetch_active(self, uow: UnitOfWork, name: str) -> SystemSshKeyRecord:
        # Bulk updates bypass the identity map
        uow.session.expire_all()
        model = await uow.system_ssh_keys.find_active_by_name(name)
        if model is None:
            raise KeyNotFoundError(name)
        return to_record(model)

    async def get_active_by_name(self, name: str) -> Optional[SystemSshKeyRecord]:
        async with self._unit_of_work() as uow:
            model = await uow.system_ssh_keys.find_active_by_name(name)
            return to_record(model) if model else None

    async def get_latest_by_name(self, name: str) -> Optional[SystemSshKeyRecord]:
        async with self._unit_of_work() as uow:
            model = await uow.system_ssh_keys.find_latest_by_name(name)
            return to_record(model) if model else None

    async def create(self, record: SystemSshKeyRecord) -> SystemSshKeyRecord:
        model = SystemSshKeyModel(
            name=record.name,
            key_type=record.key_type,
            public_key=record.public_key,
            private_key_encrypted=record.private_key_encrypted,
            fingerprint=record.fingerprint,
            algorithm=record.algorithm,
            key_size=record.key_size,
            is_active=True,
            description=record.description,
            version=1,
            usage_count=0,
        )
        try:
            async with self._unit_of_work() as uow:
                await uow.system_ssh_keys.save(model)
                await uow.session.refresh(model)
                created = to_record(model)
        except IntegrityViolation as e:
            raise KeyAlreadyExistsError(record.name) from e
        logger.debug("key_record_created", key_name=record.name, record_id=created.id)
        return created

    async def update_active(
        self, name: str, update: KeyMaterialUpdate, expected_version: int
    ) -> SystemSshKeyRecord:
        async with self._unit_of_work() as uow:
            updated = await uow.system_ssh_keys.update_material(
                name,
                expected_version,
                public_key=update.public_key,
                private_key_encrypted=update.private_key_encrypted,
                fingerprint=update.fingerprint,
                key_size=update.key_size,
            )
            if updated != 1:
                current = await uow.system_ssh_keys.find_active_by_name(name)
                if current is None:
                    raise KeyNotFoundError(name)
                raise ConcurrentModificationError(name, expected_version)
            return await self._refetch_active(uow, name)

    async def list_by_type(
        self, key_type: str, include_inactive: bool = False
    ) -> List[SystemSshKeyRecord]:
        async with self._unit_of_work() as uow:
            models = await uow.system_ssh_keys.list_by_type(key_type, include_inactive)
            return [to_record(m) for m in models]

    async def deactivate(self, name: str) -> SystemSshKeyRecord:
        async with self._unit_of_work() as uow:
            current = await uow.system_ssh_keys.find_active_by_name(name)
            if current is None:
                raise KeyNotFoundError(name)
            record_id = current.id
            await uow.system_ssh_keys.deactivate(name)
            uow.session.expire_all()
            model = await uow.system_ssh_keys.find_by_id(record_id)
            return to_record(model)

    async def reactivate(self, name: str) -> SystemSshKeyRecord:
        try:
            async with self._unit_of_work() as uow:
                if await uow.system_ssh_keys.find_active_by_name(name) is not None:
                    raise KeyAlreadyExistsError(name)
                latest = await uow.system_ssh_keys.find_latest_by_name(name)
                if latest is None:
                    raise KeyNotFoundError(name)
                await uow.system_ssh_keys.reactivate(latest.id)
                return await self._refetch_active(uow, name)
        except IntegrityViolation as e:
            raise KeyAlreadyExistsError(name) from e

    async def record_usage(self, name: str) -> None:
        async with self._unit_of_work() as uow:
            if await uow.system_ssh_keys.increment_usage(name) != 1:
                raise KeyNotFoundError(name)
