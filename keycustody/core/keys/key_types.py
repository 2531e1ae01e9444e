"""Key custody type definitions"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union


def wipe(buffer: Optional[bytearray]) -> None:
    """Overwrite a plaintext buffer in place."""
    if buffer is None:
        return
    for i in range(len(buffer)):
        buffer[i] = 0


@dataclass(frozen=True)
class RSAPublicComponents:
    """RSA public numbers as unsigned big-endian bytes"""
    n: bytes
    e: bytes

    @classmethod
    def from_integers(cls, n: int, e: int) -> "RSAPublicComponents":
        return cls(n=_int_to_bytes(n), e=_int_to_bytes(e))

    @property
    def n_int(self) -> int:
        return int.from_bytes(self.n, "big")

    @property
    def e_int(self) -> int:
        return int.from_bytes(self.e, "big")


def _int_to_bytes(value: int) -> bytes:
    return value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")


@dataclass
class KeyPair:
    """Freshly generated keypair; never persisted as-is"""
    private_key_pem: bytearray
    public: RSAPublicComponents
    bits: int

    def wipe(self) -> None:
        wipe(self.private_key_pem)


@dataclass(frozen=True)
class DecodedPublicKey:
    """Result of decoding an OpenSSH public key line"""
    algorithm: str
    n: bytes
    e: bytes
    comment: Optional[str] = None

    @property
    def components(self) -> RSAPublicComponents:
        return RSAPublicComponents(n=self.n, e=self.e)


@dataclass(frozen=True)
class EncryptedPrivateKey:
    """Private key encrypted at rest, serialized as ``ivHex:cipherHex``"""
    iv: bytes
    ciphertext: bytes

    def serialize(self) -> str:
        return f"{self.iv.hex()}:{self.ciphertext.hex()}"

    def __str__(self) -> str:
        return self.serialize()


EncryptedBlob = Union[EncryptedPrivateKey, str]


@dataclass
class SystemSshKeyRecord:
    """Persisted administrative key record"""
    name: str
    public_key: str
    private_key_encrypted: str
    fingerprint: Optional[str]
    key_type: str = "admin"
    algorithm: str = "RSA"
    key_size: int = 4096
    is_active: bool = True
    description: Optional[str] = None
    id: Optional[int] = None
    version: int = 1
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def copy(self) -> "SystemSshKeyRecord":
        return replace(self)

    def __repr__(self) -> str:
        return (
            f"SystemSshKeyRecord(name={self.name!r}, fingerprint={self.fingerprint!r}, "
            f"is_active={self.is_active}, version={self.version})"
        )


@dataclass(frozen=True)
class KeyMaterialUpdate:
    """Fields replaced together by a single store write"""
    public_key: str
    private_key_encrypted: str
    fingerprint: str
    key_size: Optional[int] = None


class VerificationStatus(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    DECRYPTION_FAILED = "decryption_failed"


@dataclass(frozen=True)
class Match:
    fingerprint: str
    status: VerificationStatus = field(default=VerificationStatus.MATCH, init=False)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Mismatch:
    """Stored public key and decrypted private key disagree"""
    db_fingerprint: Optional[str]
    derived_fingerprint: Optional[str]
    stored_fingerprint: Optional[str] = None
    public_key_matches: bool = False
    status: VerificationStatus = field(default=VerificationStatus.MISMATCH, init=False)

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class DecryptionFailed:
    reason: str
    status: VerificationStatus = field(
        default=VerificationStatus.DECRYPTION_FAILED, init=False
    )

    @property
    def ok(self) -> bool:
        return False


VerificationResult = Union[Match, Mismatch, DecryptionFailed]


class KeyState(str, Enum):
    """Lifecycle of a named key as seen by the coordinator"""
    ABSENT = "absent"
    ACTIVE = "active"
    ROTATING_SECRET = "rotating_secret"
    INCONSISTENT = "inconsistent"


class RotationOutcome(str, Enum):
    ALREADY_CURRENT = "already_current"
    RE_ENCRYPTED = "re_encrypted"


@dataclass(frozen=True)
class RotationResult:
    """Outcome of a secret rotation"""
    name: str
    outcome: RotationOutcome
    recovered_from: str
    fingerprint: Optional[str]
    verification: VerificationResult
    record: SystemSshKeyRecord


@dataclass
class AdminCredential:
    """Plaintext admin credential handed to an operational consumer.

    Use as a context manager so the private key is wiped on exit.
    """
    private_key_pem: bytearray
    public_key_line: str
    fingerprint: str

    def private_key_text(self) -> str:
        return self.private_key_pem.decode("utf-8")

    def wipe(self) -> None:
        wipe(self.private_key_pem)

    def __enter__(self) -> "AdminCredential":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return f"AdminCredential(fingerprint={self.fingerprint!r}, private_key_pem=***)"
