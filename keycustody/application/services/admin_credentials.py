"""Admin credential service.

Entry point for consumers that need the administrative keypair: VM
provisioning needs the public key, the web terminal needs the private key.
Plaintext only leaves through ``request_admin_credential``, which verifies
the stored pair first.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import yaml

from keycustody.application.dto.key_dto import EnsureKeyDTO, VerificationDTO
from keycustody.application.services.base import ServiceBase
from keycustody.application.services.key_rotation import (
    KeyRotationCoordinator,
    backup_prefix_for,
)
from keycustody.core.errors import (
    ConsistencyMismatch,
    DecryptionError,
    FormatError,
    KeyCustodyError,
    KeyNotFoundError,
)
from keycustody.core.keys.key_types import (
    AdminCredential,
    DecryptionFailed,
    Match,
    Mismatch,
    SystemSshKeyRecord,
    VerificationResult,
    wipe,
)
from keycustody.infrastructure.audit import AuditAction
from keycustody.infrastructure.filesystem.key_files import (
    KeyFilePaths,
    KeyFileStore,
    export_to_directory,
)
from keycustody.infrastructure.metrics import record_operation


@dataclass(frozen=True)
class KeyInspection:
    record: SystemSshKeyRecord
    verification: VerificationResult

    def to_dto(self) -> VerificationDTO:
        return VerificationDTO.from_result(self.record, self.verification)


def build_cloud_init(
    user_public_key: str,
    admin_public_key: Optional[str],
    password: Optional[str] = None,
    users: tuple = ("opc", "ubuntu"),
) -> str:
    """Cloud-init user data that authorizes the tenant key and the admin key.

    With a password, password login is enabled and set for the default users.
    """
    keys = [user_public_key.strip()]
    if admin_public_key:
        keys.append(admin_public_key.strip())

    document = {
        "ssh_authorized_keys": keys,
        "ssh_pwauth": bool(password),
    }
    if password:
        document["chpasswd"] = {
            "expire": False,
            "list": "\n".join(f"{user}:{password}" for user in users) + "\n",
        }
        document["disable_root"] = False

    return "#cloud-config\n" + yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


class AdminCredentialService(ServiceBase):
    """Bootstrap, lookup and sanctioned export of the admin keypair."""

    def __init__(
        self,
        coordinator: KeyRotationCoordinator,
        key_files: Optional[KeyFileStore] = None,
        admin_key_name: Optional[str] = None,
    ):
        super().__init__()
        self.coordinator = coordinator
        self.store = coordinator.store
        self.audit = coordinator.audit
        self.key_files = key_files if key_files is not None else coordinator.key_files
        self.admin_key_name = admin_key_name or coordinator.admin_key_name

    async def initialize(self) -> None:
        await self.coordinator.initialize()
        self.logger.info("admin_credential_service_initialized", key_name=self.admin_key_name)

    async def cleanup(self) -> None:
        await self.coordinator.cleanup()
        self.logger.info("admin_credential_service_cleanup")

    async def get_key(self, name: str) -> SystemSshKeyRecord:
        record = await self.store.get_active_by_name(name)
        if record is None:
            raise KeyNotFoundError(name)
        return record

    async def ensure_admin_key(self, name: Optional[str] = None) -> EnsureKeyDTO:
        """Make sure an active admin key exists, creating one if needed.

        Order: existing active record, re-activated inactive record, consistent
        backup files, fresh generation.
        """
        name = name or self.admin_key_name
        warnings: List[str] = []

        record = await self.store.get_active_by_name(name)
        action = "existing"
        backup_error = None

        if record is None:
            latest = await self.store.get_latest_by_name(name)
            if latest is not None:
                record = await self.coordinator.reactivate(name)
                action = "reactivated"

        if record is None and self.key_files is not None:
            record = await self._restore_from_backup(name, warnings)
            if record is not None:
                action = "restored_from_backup"

        if record is None:
            report = await self.coordinator.regenerate_with_report(name)
            record = report.record
            backup_error = report.backup_error
            action = "generated"
            if backup_error:
                warnings.append(f"backup files were not written: {backup_error}")

        verification = self.coordinator.verify(record)
        if isinstance(verification, DecryptionFailed):
            warnings.append(
                "stored key does not decrypt with the current secret; "
                "run rotate-secret with the previous secret"
            )
        elif isinstance(verification, Mismatch):
            warnings.append("stored public and private keys do not match; regenerate the key")

        self.logger.info(
            "admin_key_ensured",
            key_name=name,
            action=action,
            fingerprint=record.fingerprint,
            verification=verification.status.value,
        )
        return EnsureKeyDTO(
            name=name,
            action=action,
            fingerprint=record.fingerprint,
            decrypts_with_current_secret=not isinstance(verification, DecryptionFailed),
            verification=verification.status.value,
            backup_error=backup_error,
            warnings=warnings or None,
        )

    async def _restore_from_backup(
        self, name: str, warnings: List[str]
    ) -> Optional[SystemSshKeyRecord]:
        prefix = backup_prefix_for(name, self.admin_key_name)
        try:
            loaded = await self.key_files.load(prefix, comment=self.coordinator.config.comment)
        except FormatError as e:
            warnings.append(f"backup files are unreadable: {e.message}")
            return None
        if loaded is None:
            return None

        private_key_pem, public_key_line = loaded
        try:
            return await self.coordinator.adopt_keypair(
                name, private_key_pem, public_key_line,
                description="System admin SSH key (restored from backup)",
            )
        except ConsistencyMismatch as e:
            self.logger.warning("backup_keypair_rejected", key_name=name, error=e.message)
            warnings.append("backup keypair is inconsistent and was ignored")
            return None
        finally:
            wipe(private_key_pem)

    async def request_admin_credential(self, name: Optional[str] = None) -> AdminCredential:
        """Return the decrypted admin credential after verifying it.

        Raises:
            ConsistencyMismatch: the stored pair does not match
            DecryptionError: the key does not decrypt with the current secret
        """
        name = name or self.admin_key_name
        record = await self.get_key(name)
        verification = self.coordinator.verify(record)

        if isinstance(verification, DecryptionFailed):
            record_operation("request_credential", "denied")
            self.audit.log_denied(
                AuditAction.REQUEST_CREDENTIAL, resource=name, reason=verification.reason
            )
            raise DecryptionError(
                f"Admin key '{name}' cannot be decrypted: {verification.reason}",
                {"name": name},
            )
        if isinstance(verification, Mismatch):
            record_operation("request_credential", "denied")
            self.audit.log_denied(
                AuditAction.REQUEST_CREDENTIAL,
                resource=name,
                reason="public/private key mismatch",
                details={
                    "db_fingerprint": verification.db_fingerprint,
                    "derived_fingerprint": verification.derived_fingerprint,
                },
            )
            raise ConsistencyMismatch(
                name, verification.db_fingerprint, verification.derived_fingerprint
            )

        credential = self.coordinator.export(record)
        try:
            await self.coordinator.record_usage(name)
        except KeyCustodyError:
            credential.wipe()
            raise

        record_operation("request_credential", "success")
        self.audit.log_success(
            AuditAction.REQUEST_CREDENTIAL,
            resource=name,
            details={"fingerprint": credential.fingerprint},
        )
        return credential

    async def get_admin_public_key(self, name: Optional[str] = None) -> str:
        record = await self.get_key(name or self.admin_key_name)
        return record.public_key.strip()

    async def build_cloud_init(
        self,
        user_public_key: str,
        password: Optional[str] = None,
        name: Optional[str] = None,
    ) -> str:
        """Cloud-init user data with the tenant key and the current admin key."""
        try:
            admin_public_key = await self.get_admin_public_key(name)
        except KeyNotFoundError:
            self.logger.warning("cloud_init_without_admin_key", key_name=name or self.admin_key_name)
            admin_public_key = None
        return build_cloud_init(user_public_key, admin_public_key, password)

    async def inspect(self, name: Optional[str] = None) -> KeyInspection:
        name = name or self.admin_key_name
        record = await self.get_key(name)
        verification = self.coordinator.verify(record)
        if isinstance(verification, Match):
            self.audit.log_success(
                AuditAction.VERIFY_KEY, resource=name, details={"fingerprint": verification.fingerprint}
            )
        else:
            dto = VerificationDTO.from_result(record, verification)
            self.audit.log_failure(
                AuditAction.VERIFY_KEY,
                resource=name,
                error=dto.reason or "public/private key mismatch",
                details={
                    "db_fingerprint": dto.db_fingerprint,
                    "derived_fingerprint": dto.derived_fingerprint,
                },
            )
        return KeyInspection(record=record, verification=verification)

    async def list_keys(
        self, key_type: Optional[str] = None, include_inactive: bool = False
    ) -> List[SystemSshKeyRecord]:
        return await self.store.list_by_type(key_type or self.coordinator.key_type, include_inactive)

    async def deactivate(self, name: Optional[str] = None) -> SystemSshKeyRecord:
        return await self.coordinator.deactivate(name or self.admin_key_name)

    async def export_to_directory(
        self,
        directory: Union[str, Path],
        name: Optional[str] = None,
    ) -> KeyFilePaths:
        """Write the verified admin keypair to ``directory`` (private key 0600)."""
        name = name or self.admin_key_name
        with await self.request_admin_credential(name) as credential:
            paths = await export_to_directory(
                credential, directory, prefix=backup_prefix_for(name, self.admin_key_name)
            )
        self.audit.log_success(
            AuditAction.EXPORT_KEY,
            resource=name,
            details={"fingerprint": credential.fingerprint, "path": str(paths.private_path)},
        )
        return paths
