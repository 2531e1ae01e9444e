"""System SSH key data access repository."""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from keycustody.infrastructure.database.models.system_ssh_key import SystemSshKeyModel
from keycustody.infrastructure.database.repositories.base import BaseRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SystemSshKeyRepository(BaseRepository[SystemSshKeyModel]):
    """System SSH key data access only."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, SystemSshKeyModel)

    async def find_active_by_name(self, name: str) -> Optional[SystemSshKeyModel]:
        stmt = select(SystemSshKeyModel).where(
            SystemSshKeyModel.name == name,
            SystemSshKeyModel.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_latest_by_name(self, name: str) -> Optional[SystemSshKeyModel]:
        """Most recent record for a name, active or not."""
        stmt = (
            select(SystemSshKeyModel)
            .where(SystemSshKeyModel.name == name)
            .order_by(SystemSshKeyModel.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_type(
        self, key_type: str, include_inactive: bool = False
    ) -> List[SystemSshKeyModel]:
        stmt = select(SystemSshKeyModel).where(SystemSshKeyModel.key_type == key_type)
        if not include_inactive:
            stmt = stmt.where(SystemSshKeyModel.is_active.is_(True))
        stmt = stmt.order_by(SystemSshKeyModel.created_at.desc(), SystemSshKeyModel.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_material(
        self,
        name: str,
        expected_version: int,
        public_key: str,
        private_key_encrypted: str,
        fingerprint: str,
        key_size: Optional[int] = None,
    ) -> int:
        """Replace key material if the active record is still at ``expected_version``.

        Returns the number of rows updated (0 when the version moved on).
        """
        values = {
            "public_key": public_key,
            "private_key_encrypted": private_key_encrypted,
            "fingerprint": fingerprint,
            "version": SystemSshKeyModel.version + 1,
            "updated_at": _now(),
        }
        if key_size is not None:
            values["key_size"] = key_size
        stmt = (
            update(SystemSshKeyModel)
            .where(
                SystemSshKeyModel.name == name,
                SystemSshKeyModel.is_active.is_(True),
                SystemSshKeyModel.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def deactivate(self, name: str) -> int:
        stmt = (
            update(SystemSshKeyModel)
            .where(SystemSshKeyModel.name == name, SystemSshKeyModel.is_active.is_(True))
            .values(
                is_active=False,
                version=SystemSshKeyModel.version + 1,
                updated_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def reactivate(self, id: int) -> int:
        stmt = (
            update(SystemSshKeyModel)
            .where(SystemSshKeyModel.id == id, SystemSshKeyModel.is_active.is_(False))
            .values(
                is_active=True,
                version=SystemSshKeyModel.version + 1,
                updated_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def increment_usage(self, name: str) -> int:
        stmt = (
            update(SystemSshKeyModel)
            .where(SystemSshKeyModel.name == name, SystemSshKeyModel.is_active.is_(True))
            .values(
                usage_count=SystemSshKeyModel.usage_count + 1,
                last_used_at=_now(),
                updated_at=SystemSshKeyModel.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
