"""Admin key rotation service.

The coordinator is the only component that writes key material to the key
store. Every cryptographic step of an operation completes before the single
store write, so a failure at any earlier point leaves the stored record as
it was.
"""

import asyncio
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from keycustody.application.services.base import ServiceBase
from keycustody.core.config import KeyCustodyConfig, settings
from keycustody.core.errors import (
    ConcurrentModificationError,
    ConsistencyMismatch,
    DecryptionError,
    FormatError,
    KeyCustodyError,
    KeyNotFoundError,
    KeyStoreError,
    NoRecoverableKeyMaterial,
    ValidationUnavailable,
)
from keycustody.core.keys.cipher import KeyCipher
from keycustody.core.keys.fingerprint import fingerprint
from keycustody.core.keys.generator import KeyPairGenerator
from keycustody.core.keys.key_types import (
    AdminCredential,
    DecryptionFailed,
    KeyMaterialUpdate,
    KeyPair,
    KeyState,
    Match,
    Mismatch,
    RotationOutcome,
    RotationResult,
    SystemSshKeyRecord,
    VerificationResult,
    wipe,
)
from keycustody.core.keys.openssh import OpenSSHEncoder
from keycustody.core.keys.private_key import normalize_to_pkcs1
from keycustody.core.keys.store import KeyStore
from keycustody.core.keys.verifier import KeyConsistencyVerifier
from keycustody.infrastructure.audit import AuditAction, AuditLogger, get_audit_logger
from keycustody.infrastructure.exceptions import FilesystemError
from keycustody.infrastructure.filesystem.key_files import (
    FileKeySource,
    KeyFilePaths,
    KeyFileStore,
    PrivateKeySource,
)
from keycustody.infrastructure.metrics import (
    MetricsContext,
    record_operation,
    ssh_key_decryption_failures_total,
    ssh_key_generation_duration_seconds,
    ssh_key_verifications_total,
)
from keycustody.infrastructure.ssh_keygen import KeyValidator


@dataclass(frozen=True)
class RegenerationReport:
    """Result of a regeneration including side effects outside the store"""
    record: SystemSshKeyRecord
    created: bool
    validation: str
    backup_paths: Optional[KeyFilePaths] = None
    backup_error: Optional[str] = None


def backup_prefix_for(name: str, admin_key_name: Optional[str] = None) -> str:
    """File prefix for a key's backup; the configured admin key uses ``admin``."""
    admin_key_name = admin_key_name or settings.admin_key_name
    return "admin" if name == admin_key_name else name


def count_verification(result: VerificationResult) -> None:
    if settings.enable_metrics:
        ssh_key_verifications_total.labels(result=result.status.value).inc()


def _count_decryption_failure(source: str) -> None:
    if settings.enable_metrics:
        ssh_key_decryption_failures_total.labels(source=source).inc()


class KeyRotationCoordinator(ServiceBase):
    """Generates, re-encrypts and exports the administrative keypair."""

    def __init__(
        self,
        store: KeyStore,
        config: KeyCustodyConfig,
        generator: Optional[KeyPairGenerator] = None,
        cipher: Optional[KeyCipher] = None,
        encoder: Optional[OpenSSHEncoder] = None,
        verifier: Optional[KeyConsistencyVerifier] = None,
        validator: Optional[KeyValidator] = None,
        key_source: Optional[PrivateKeySource] = None,
        key_files: Optional[KeyFileStore] = None,
        executor: Optional[Executor] = None,
        audit: Optional[AuditLogger] = None,
        key_type: str = "admin",
        admin_key_name: Optional[str] = None,
    ):
        super().__init__()
        self.store = store
        self.config = config
        self.generator = generator or KeyPairGenerator()
        self.cipher = cipher or KeyCipher()
        self.encoder = encoder or OpenSSHEncoder()
        self.verifier = verifier or KeyConsistencyVerifier(self.cipher, self.encoder)
        self.validator = validator
        self.key_source = key_source or FileKeySource()
        self.key_files = key_files
        self.audit = audit or get_audit_logger()
        self.key_type = key_type
        self.admin_key_name = admin_key_name or settings.admin_key_name

        self._owns_executor = executor is None
        self._executor = executor
        self._states: Dict[str, KeyState] = {}

    async def initialize(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, settings.keygen_max_workers),
                thread_name_prefix="keygen",
            )
            self._owns_executor = True
        self.logger.info("key_rotation_coordinator_initialized", key_type=self.key_type)

    async def cleanup(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self.logger.info("key_rotation_coordinator_cleanup")

    # ------------------------------------------------------------------
    # Generation

    async def generate_keypair(self, bits: int) -> KeyPair:
        """Generate a keypair on a worker thread."""
        loop = asyncio.get_running_loop()
        with MetricsContext(ssh_key_generation_duration_seconds, bits=str(bits)):
            return await loop.run_in_executor(self._executor, self.generator.generate, bits)

    async def _validate_public_key(self, public_key_line: str) -> str:
        if self.validator is None:
            return "skipped"
        try:
            await self.validator.validate(public_key_line)
        except ValidationUnavailable as e:
            self.logger.warning("public_key_validation_unavailable", reason=e.message)
            return "unavailable"
        return "passed"

    async def regenerate(
        self,
        name: str,
        bits: Optional[int] = None,
        comment: Optional[str] = None,
        description: Optional[str] = None,
    ) -> SystemSshKeyRecord:
        """Replace (or create) the keypair stored under ``name``.

        Destructive: machines provisioned with the previous public key lose
        admin access until they are re-keyed.
        """
        report = await self.regenerate_with_report(name, bits, comment, description)
        return report.record

    async def regenerate_with_report(
        self,
        name: str,
        bits: Optional[int] = None,
        comment: Optional[str] = None,
        description: Optional[str] = None,
    ) -> RegenerationReport:
        bits = bits or self.config.modulus_bits
        comment = self.config.comment if comment is None else comment
        secret = self.config.encryption_secret
        log = self.logger.bind(key_name=name, bits=bits)

        try:
            existing = await self.store.get_active_by_name(name)
            keypair = await self.generate_keypair(bits)
            try:
                record, validation = await self._write_new_material(
                    name, keypair, comment, description, existing, secret
                )
                backup_paths, backup_error = await self._write_backup(name, keypair, record)
            finally:
                keypair.wipe()
        except KeyCustodyError as e:
            log.error("admin_key_regeneration_failed", error=e.message)
            record_operation("regenerate", "failure")
            self.audit.log_failure(
                AuditAction.GENERATE_KEY, resource=name, error=e.message, details={"bits": bits}
            )
            raise

        self._states[name] = KeyState.ACTIVE
        record_operation("regenerate", "success")
        self.audit.log_success(
            AuditAction.GENERATE_KEY,
            resource=name,
            details={
                "fingerprint": record.fingerprint,
                "bits": bits,
                "replaced": existing is not None,
                "validation": validation,
                "backup_error": backup_error,
            },
        )
        log.info(
            "admin_key_regenerated",
            fingerprint=record.fingerprint,
            version=record.version,
            created=existing is None,
            validation=validation,
        )
        return RegenerationReport(
            record=record,
            created=existing is None,
            validation=validation,
            backup_paths=backup_paths,
            backup_error=backup_error,
        )

    async def _write_new_material(
        self,
        name: str,
        keypair: KeyPair,
        comment: Optional[str],
        description: Optional[str],
        existing: Optional[SystemSshKeyRecord],
        secret: str,
    ):
        public_key_line = self.encoder.encode_components(keypair.public, comment)
        validation = await self._validate_public_key(public_key_line)
        key_fingerprint = fingerprint(public_key_line)
        encrypted = self.cipher.encrypt(keypair.private_key_pem, secret).serialize()

        candidate = SystemSshKeyRecord(
            name=name,
            key_type=existing.key_type if existing else self.key_type,
            public_key=public_key_line,
            private_key_encrypted=encrypted,
            fingerprint=key_fingerprint,
            key_size=keypair.bits,
            description=description if description is not None else (
                existing.description if existing else f"System {self.key_type} SSH key"
            ),
        )
        check = self.verifier.verify(candidate, secret)
        count_verification(check)
        if not isinstance(check, Match):
            raise ConsistencyMismatch(
                name,
                getattr(check, "db_fingerprint", key_fingerprint),
                getattr(check, "derived_fingerprint", None),
                reason="freshly generated material failed self-verification",
            )

        if existing is None:
            record = await self.store.create(candidate)
        else:
            record = await self.store.update_active(
                name,
                KeyMaterialUpdate(
                    public_key=public_key_line,
                    private_key_encrypted=encrypted,
                    fingerprint=key_fingerprint,
                    key_size=keypair.bits,
                ),
                expected_version=existing.version,
            )
        return record, validation

    async def _write_backup(self, name: str, keypair: KeyPair, record: SystemSshKeyRecord):
        if self.key_files is None:
            return None, None
        try:
            paths = await self.key_files.save(
                backup_prefix_for(name, self.admin_key_name),
                keypair.private_key_pem,
                record.public_key,
            )
            return paths, None
        except (FilesystemError, OSError) as e:
            self.logger.error("admin_key_backup_failed", key_name=name, error=str(e))
            return None, str(e)

    # ------------------------------------------------------------------
    # Secret rotation

    def _try_decrypt(self, record: SystemSshKeyRecord, secret: str, source: str) -> Optional[bytearray]:
        if not secret:
            return None
        try:
            return self.cipher.decrypt(record.private_key_encrypted, secret)
        except DecryptionError:
            _count_decryption_failure(source)
            return None

    def _matches_record(self, record: SystemSshKeyRecord, plaintext: bytearray) -> bool:
        result = self.verifier.verify_material(record.public_key, plaintext)
        if isinstance(result, Match):
            return True
        return isinstance(result, Mismatch) and result.public_key_matches

    async def _read_key_file(self, key_file: Union[str, Path]) -> Optional[bytearray]:
        try:
            raw = await self.key_source.read_private_key_file(key_file)
        except FileNotFoundError:
            self.logger.warning("out_of_band_key_file_missing", path=str(key_file))
            return None
        try:
            return normalize_to_pkcs1(raw)
        except FormatError as e:
            self.logger.warning("out_of_band_key_file_invalid", path=str(key_file), error=e.message)
            return None
        finally:
            wipe(raw)

    async def rotate_secret(
        self,
        name: str,
        old_secret_candidates: Sequence[str],
        new_secret: str,
        key_file: Optional[Union[str, Path]] = None,
    ) -> RotationResult:
        """Re-encrypt the stored private key under ``new_secret``.

        Sources are tried in order: the current blob under ``new_secret``, each
        old secret candidate, then ``key_file``. A recovered key is used only
        if its public half matches the stored public key.

        Raises:
            NoRecoverableKeyMaterial: nothing produced a matching key; the
                record is left unchanged
            KeyStoreError: the store write failed; the record is left unchanged
        """
        self.cipher.derive_key(new_secret)
        log = self.logger.bind(key_name=name)

        record = await self.store.get_active_by_name(name)
        if record is None:
            raise KeyNotFoundError(name)

        self._states[name] = KeyState.ROTATING_SECRET
        try:
            return await self._reencrypt(record, old_secret_candidates, new_secret, key_file, log)
        except KeyStoreError as e:
            record_operation("rotate_secret", "failure")
            log.error("secret_rotation_store_failed", error=e.message)
            self.audit.log_failure(AuditAction.ROTATE_SECRET, resource=name, error=e.message)
            raise
        finally:
            if self._states.get(name) == KeyState.ROTATING_SECRET:
                self._states[name] = KeyState.ACTIVE

    async def _reencrypt(
        self,
        record: SystemSshKeyRecord,
        old_secret_candidates: Sequence[str],
        new_secret: str,
        key_file: Optional[Union[str, Path]],
        log,
    ) -> RotationResult:
        name = record.name
        attempted: List[str] = []

        plaintext = self._try_decrypt(record, new_secret, "current_secret")
        attempted.append("current_secret")
        if plaintext is not None:
            try:
                current_result = self.verifier.verify_material(
                    record.public_key, plaintext, record.fingerprint
                )
            finally:
                wipe(plaintext)
            if isinstance(current_result, Match):
                count_verification(current_result)
                self._states[name] = KeyState.ACTIVE
                record_operation("rotate_secret", "already_current")
                log.info("secret_rotation_not_needed", fingerprint=record.fingerprint)
                return RotationResult(
                    name=name,
                    outcome=RotationOutcome.ALREADY_CURRENT,
                    recovered_from="current_secret",
                    fingerprint=record.fingerprint,
                    verification=current_result,
                    record=record,
                )
            log.warning("current_secret_decrypts_mismatched_key")

        recovered: Optional[bytearray] = None
        recovered_from = None
        for index, candidate in enumerate(old_secret_candidates):
            source = f"previous_secret[{index}]"
            if not candidate or candidate == new_secret:
                continue
            attempted.append(source)
            plaintext = self._try_decrypt(record, candidate, "previous_secret")
            if plaintext is None:
                continue
            if self._matches_record(record, plaintext):
                recovered, recovered_from = plaintext, source
                break
            wipe(plaintext)

        if recovered is None and key_file is not None:
            attempted.append("key_file")
            plaintext = await self._read_key_file(key_file)
            if plaintext is not None:
                if self._matches_record(record, plaintext):
                    recovered, recovered_from = plaintext, "key_file"
                else:
                    log.warning("out_of_band_key_does_not_match", path=str(key_file))
                    wipe(plaintext)

        if recovered is None:
            self._states[name] = KeyState.INCONSISTENT
            record_operation("rotate_secret", "failure")
            log.error("secret_rotation_failed", attempted_sources=attempted)
            self.audit.log_failure(
                AuditAction.ROTATE_SECRET,
                resource=name,
                error="no recoverable key material",
                details={"attempted_sources": attempted},
            )
            raise NoRecoverableKeyMaterial(name, attempted)

        try:
            canonical = normalize_to_pkcs1(recovered)
        finally:
            wipe(recovered)
        try:
            encrypted = self.cipher.encrypt(canonical, new_secret).serialize()
        finally:
            wipe(canonical)

        update = KeyMaterialUpdate(
            public_key=record.public_key,
            private_key_encrypted=encrypted,
            fingerprint=fingerprint(record.public_key),
        )
        try:
            updated = await self.store.update_active(name, update, expected_version=record.version)
        except ConcurrentModificationError:
            self._states[name] = KeyState.ACTIVE
            record_operation("rotate_secret", "conflict")
            log.warning("secret_rotation_lost_race", expected_version=record.version)
            raise

        verification = self.verifier.verify(updated, new_secret)
        count_verification(verification)
        if not isinstance(verification, Match):
            self._states[name] = KeyState.INCONSISTENT
            record_operation("rotate_secret", "failure")
            log.error("secret_rotation_postcondition_failed", status=verification.status.value)
            raise ConsistencyMismatch(
                name,
                getattr(verification, "db_fingerprint", updated.fingerprint),
                getattr(verification, "derived_fingerprint", None),
                reason="re-encrypted key failed verification",
            )

        self._states[name] = KeyState.ACTIVE
        record_operation("rotate_secret", "success")
        self.audit.log_success(
            AuditAction.ROTATE_SECRET,
            resource=name,
            details={"fingerprint": updated.fingerprint, "recovered_from": recovered_from},
        )
        log.info(
            "secret_rotated",
            recovered_from=recovered_from,
            fingerprint=updated.fingerprint,
            version=updated.version,
        )
        return RotationResult(
            name=name,
            outcome=RotationOutcome.RE_ENCRYPTED,
            recovered_from=recovered_from,
            fingerprint=updated.fingerprint,
            verification=verification,
            record=updated,
        )

    # ------------------------------------------------------------------
    # Export, verification and state

    def export(self, record: SystemSshKeyRecord, secret: Optional[str] = None) -> AdminCredential:
        """Decrypt a record into a PKCS#1 credential. Wipe it after use."""
        secret = self.config.encryption_secret if secret is None else secret
        try:
            plaintext = self.cipher.decrypt(record.private_key_encrypted, secret)
        except DecryptionError:
            _count_decryption_failure("export")
            raise
        try:
            private_key_pem = normalize_to_pkcs1(plaintext)
        except FormatError as e:
            raise DecryptionError(
                "Decrypted data is not an RSA private key", {"name": record.name}
            ) from e
        finally:
            wipe(plaintext)

        public_key_line = record.public_key.strip()
        try:
            key_fingerprint = fingerprint(public_key_line)
        except FormatError:
            wipe(private_key_pem)
            raise
        record_operation("export", "success")
        return AdminCredential(
            private_key_pem=private_key_pem,
            public_key_line=public_key_line,
            fingerprint=key_fingerprint,
        )

    def verify(self, record: SystemSshKeyRecord, secret: Optional[str] = None) -> VerificationResult:
        secret = self.config.encryption_secret if secret is None else secret
        result = self.verifier.verify(record, secret)
        count_verification(result)
        if isinstance(result, DecryptionFailed):
            _count_decryption_failure("verify")
        self._states[record.name] = KeyState.ACTIVE if result.ok else KeyState.INCONSISTENT
        return result

    async def state(self, name: str) -> KeyState:
        """Current lifecycle state of ``name`` as seen by this coordinator."""
        tracked = self._states.get(name)
        if tracked == KeyState.ROTATING_SECRET:
            return tracked
        record = await self.store.get_active_by_name(name)
        if record is None:
            return KeyState.ABSENT
        return tracked or KeyState.ACTIVE

    # ------------------------------------------------------------------
    # Record lifecycle

    async def adopt_keypair(
        self,
        name: str,
        private_key_pem: Union[bytes, bytearray],
        public_key_line: str,
        description: Optional[str] = None,
    ) -> SystemSshKeyRecord:
        """Store an existing keypair (for example a backup) as a new active record.

        Raises:
            ConsistencyMismatch: the private key does not belong to the public key
        """
        check = self.verifier.verify_material(public_key_line, private_key_pem)
        if not isinstance(check, Match):
            raise ConsistencyMismatch(
                name,
                getattr(check, "db_fingerprint", None),
                getattr(check, "derived_fingerprint", None),
                reason="backup keypair does not match",
            )

        canonical = normalize_to_pkcs1(private_key_pem)
        try:
            encrypted = self.cipher.encrypt(canonical, self.config.encryption_secret).serialize()
        finally:
            wipe(canonical)

        decoded = self.encoder.decode(public_key_line)
        record = await self.store.create(
            SystemSshKeyRecord(
                name=name,
                key_type=self.key_type,
                public_key=public_key_line.strip(),
                private_key_encrypted=encrypted,
                fingerprint=check.fingerprint,
                key_size=len(decoded.n) * 8,
                description=description or f"System {self.key_type} SSH key",
            )
        )
        self._states[name] = KeyState.ACTIVE
        record_operation("adopt", "success")
        self.logger.info("admin_key_adopted", key_name=name, fingerprint=record.fingerprint)
        return record

    async def deactivate(self, name: str) -> SystemSshKeyRecord:
        record = await self.store.deactivate(name)
        self._states.pop(name, None)
        record_operation("deactivate", "success")
        self.audit.log_success(
            AuditAction.DEACTIVATE_KEY, resource=name, details={"fingerprint": record.fingerprint}
        )
        self.logger.info("admin_key_deactivated", key_name=name, fingerprint=record.fingerprint)
        return record

    async def reactivate(self, name: str) -> SystemSshKeyRecord:
        record = await self.store.reactivate(name)
        record_operation("reactivate", "success")
        self.logger.info("admin_key_reactivated", key_name=name, fingerprint=record.fingerprint)
        return record

    async def record_usage(self, name: str) -> None:
        await self.store.record_usage(name)
