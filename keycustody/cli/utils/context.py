"""CLI context management."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from rich.console import Console

from keycustody.application.services.admin_credentials import AdminCredentialService
from keycustody.application.services.key_rotation import KeyRotationCoordinator
from keycustody.cli.utils.output import OutputFormatter
from keycustody.core.config import RECOMMENDED_SECRET_LENGTH, Settings
from keycustody.infrastructure.audit import AuditLogger
from keycustody.infrastructure.database import DatabaseConnection, SqlKeyStore
from keycustody.infrastructure.filesystem.key_files import KeyFileStore
from keycustody.infrastructure.logging import get_logger
from keycustody.infrastructure.ssh_keygen import SshKeygenValidator

logger = get_logger(__name__)


@dataclass
class CLIContext:
    """Context object passed through CLI commands."""

    debug: bool
    settings: Settings
    formatter: OutputFormatter
    console: Console

    def database(self) -> DatabaseConnection:
        return DatabaseConnection(self.settings.database_url, echo=self.settings.database_echo)

    @asynccontextmanager
    async def admin_service(
        self, secret: Optional[str] = None
    ) -> AsyncIterator[AdminCredentialService]:
        """Wire the admin credential service against the configured database."""
        settings = self.settings
        config = settings.key_custody_config(secret)
        if config.secret_is_weak:
            logger.warning(
                "encryption_secret_short",
                length=len(config.encryption_secret),
                recommended=RECOMMENDED_SECRET_LENGTH,
            )

        key_files = KeyFileStore(settings.secrets_dir)
        validator = (
            SshKeygenValidator(settings.ssh_keygen_path, settings.ssh_keygen_timeout_seconds)
            if settings.validate_with_ssh_keygen
            else None
        )
        audit = AuditLogger(log_dir=settings.audit_log_dir, enabled=settings.enable_audit_log)

        async with self.database() as connection:
            if connection.is_sqlite:
                await connection.create_all()
            coordinator = KeyRotationCoordinator(
                SqlKeyStore(connection),
                config,
                validator=validator,
                key_files=key_files if settings.key_backup_enabled else None,
                audit=audit,
                key_type=settings.admin_key_type,
                admin_key_name=settings.admin_key_name,
            )
            async with AdminCredentialService(coordinator, key_files=key_files) as service:
                yield service
