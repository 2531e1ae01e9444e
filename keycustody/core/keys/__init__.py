"""RSA admin key material: encoding, fingerprints, encryption and verification"""

from keycustody.core.keys.cipher import KeyCipher
from keycustody.core.keys.fingerprint import fingerprint, sha256_fingerprint
from keycustody.core.keys.generator import SUPPORTED_BITS, KeyPairGenerator
from keycustody.core.keys.key_types import (
    AdminCredential,
    DecodedPublicKey,
    DecryptionFailed,
    EncryptedPrivateKey,
    KeyPair,
    KeyState,
    Match,
    Mismatch,
    RotationOutcome,
    RotationResult,
    SystemSshKeyRecord,
)
from keycustody.core.keys.openssh import OpenSSHEncoder
from keycustody.core.keys.store import InMemoryKeyStore, KeyStore
from keycustody.core.keys.verifier import KeyConsistencyVerifier

__all__ = [
    "AdminCredential",
    "DecodedPublicKey",
    "DecryptionFailed",
    "EncryptedPrivateKey",
    "InMemoryKeyStore",
    "KeyCipher",
    "KeyConsistencyVerifier",
    "KeyPair",
    "KeyPairGenerator",
    "KeyState",
    "KeyStore",
    "Match",
    "Mismatch",
    "OpenSSHEncoder",
    "RotationOutcome",
    "RotationResult",
    "SUPPORTED_BITS",
    "SystemSshKeyRecord",
    "fingerprint",
    "sha256_fingerprint",
]
