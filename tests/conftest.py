"""Pytest configuration and fixtures"""

from pathlib import Path
from typing import List, Optional

import pytest
import pytest_asyncio

from keycustody.application.services.admin_credentials import AdminCredentialService
from keycustody.application.services.key_rotation import KeyRotationCoordinator
from keycustody.core.config import KeyCustodyConfig
from keycustody.core.errors import KeyStoreError
from keycustody.core.keys.cipher import KeyCipher
from keycustody.core.keys.fingerprint import fingerprint
from keycustody.core.keys.generator import KeyPairGenerator
from keycustody.core.keys.key_types import KeyPair, SystemSshKeyRecord
from keycustody.core.keys.private_key import components_from_private_pem
from keycustody.core.keys.store import InMemoryKeyStore
from keycustody.infrastructure.audit import AuditLogger
from keycustody.infrastructure.filesystem.key_files import KeyFileStore
from tests.keydata import PRIVATE_RSA_PKCS1, PUBLIC_RSA_OPENSSH

ADMIN_KEY_NAME = "default-admin-key"
TEST_SECRET = "test-secret-32-bytes-minimum!!"
OLD_SECRET = "previous-secret-32-bytes-minimum"


class StaticKeyPairGenerator(KeyPairGenerator):
    """Hands out pre-built keypairs in order, then repeats the last one."""

    def __init__(self, *private_pems: str):
        super().__init__()
        self.private_pems: List[str] = list(private_pems) or [PRIVATE_RSA_PKCS1]
        self.calls = 0

    def generate(self, bits: int = 4096) -> KeyPair:
        pem = self.private_pems[min(self.calls, len(self.private_pems) - 1)]
        self.calls += 1
        public = components_from_private_pem(pem)
        return KeyPair(
            private_key_pem=bytearray(pem.encode("ascii")),
            public=public,
            bits=public.n_int.bit_length(),
        )


class FailingKeyStore(InMemoryKeyStore):
    """In-memory store whose material writes fail on demand."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    async def create(self, record):
        if self.fail_writes:
            raise KeyStoreError("Key store operation failed: store unavailable")
        return await super().create(record)

    async def update_active(self, name, update, expected_version):
        if self.fail_writes:
            raise KeyStoreError("Key store operation failed: store unavailable")
        return await super().update_active(name, update, expected_version)


def make_record(
    name: str = ADMIN_KEY_NAME,
    private_pem: str = PRIVATE_RSA_PKCS1,
    public_line: str = PUBLIC_RSA_OPENSSH,
    secret: str = TEST_SECRET,
    key_fingerprint: Optional[str] = None,
) -> SystemSshKeyRecord:
    """Record whose private key is encrypted under ``secret``."""
    return SystemSshKeyRecord(
        name=name,
        public_key=public_line,
        private_key_encrypted=KeyCipher().encrypt(private_pem, secret).serialize(),
        fingerprint=key_fingerprint or fingerprint(public_line),
        key_size=2048,
        description="System admin SSH key",
    )


@pytest.fixture(scope="session")
def second_private_pem() -> str:
    """A second 2048-bit key, distinct from the fixed test key"""
    keypair = KeyPairGenerator().generate(2048)
    return bytes(keypair.private_key_pem).decode("ascii")


@pytest.fixture
def config() -> KeyCustodyConfig:
    return KeyCustodyConfig(
        modulus_bits=2048,
        encryption_secret=TEST_SECRET,
        comment="system@keycustody",
    )


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger(enabled=False)


@pytest.fixture
def store() -> InMemoryKeyStore:
    return InMemoryKeyStore()


@pytest.fixture
def key_files(tmp_path: Path) -> KeyFileStore:
    return KeyFileStore(tmp_path / "ssh-keys")


@pytest.fixture
def generator() -> StaticKeyPairGenerator:
    return StaticKeyPairGenerator()


@pytest_asyncio.fixture
async def coordinator(store, config, generator, key_files, audit_logger):
    async with KeyRotationCoordinator(
        store,
        config,
        generator=generator,
        key_files=key_files,
        audit=audit_logger,
        admin_key_name=ADMIN_KEY_NAME,
    ) as coordinator:
        yield coordinator


@pytest_asyncio.fixture
async def admin_service(coordinator, key_files):
    async with AdminCredentialService(coordinator, key_files=key_files) as service:
        yield service
