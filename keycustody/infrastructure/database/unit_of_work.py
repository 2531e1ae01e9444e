"""Unit of Work pattern for transaction management."""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from .repositories.system_ssh_key_repository import SystemSshKeyRepository


class UnitOfWork:
    """Groups repository calls into one transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._system_ssh_keys: Optional[SystemSshKeyRepository] = None

    @property
    def system_ssh_keys(self) -> SystemSshKeyRepository:
        if self._system_ssh_keys is None:
            self._system_ssh_keys = SystemSshKeyRepository(self.session)
        return self._system_ssh_keys

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()
