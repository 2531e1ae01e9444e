"""Consistency check between a stored public key and its encrypted private key"""

from typing import Optional, Union

from keycustody.core.errors import DecryptionError, FormatError
from keycustody.core.keys.cipher import KeyCipher
from keycustody.core.keys.fingerprint import fingerprint
from keycustody.core.keys.key_types import (
    DecryptionFailed,
    Match,
    Mismatch,
    SystemSshKeyRecord,
    VerificationResult,
    wipe,
)
from keycustody.core.keys.openssh import OpenSSHEncoder
from keycustody.core.keys.private_key import components_from_private_pem
from keycustody.infrastructure.logging import get_logger

logger = get_logger(__name__)


class KeyConsistencyVerifier:
    """Confirms a record's public key was derived from its private key.

    Only the ``ssh-rsa <base64>`` identity is compared; comments are ignored.
    Fingerprints are compared as a second, independent signal.
    """

    def __init__(
        self,
        cipher: Optional[KeyCipher] = None,
        encoder: Optional[OpenSSHEncoder] = None,
    ):
        self.cipher = cipher or KeyCipher()
        self.encoder = encoder or OpenSSHEncoder()

    def verify(self, record: SystemSshKeyRecord, secret: str) -> VerificationResult:
        try:
            plaintext = self.cipher.decrypt(record.private_key_encrypted, secret)
        except DecryptionError as e:
            logger.warning("key_verification_decrypt_failed", key_name=record.name, reason=e.message)
            return DecryptionFailed(reason=e.message)

        try:
            return self.verify_material(record.public_key, plaintext, record.fingerprint)
        finally:
            wipe(plaintext)

    def verify_material(
        self,
        public_key: str,
        private_key_pem: Union[bytes, bytearray],
        stored_fingerprint: Optional[str] = None,
    ) -> VerificationResult:
        """Compare already-decrypted material against a public key line."""
        try:
            components = components_from_private_pem(private_key_pem)
        except FormatError:
            return DecryptionFailed(reason="decrypted data is not an RSA private key")

        derived_line = self.encoder.encode_components(components)
        derived_blob = self.encoder.public_blob(derived_line)
        derived_fingerprint = fingerprint(derived_line)

        try:
            self.encoder.decode(public_key)
            stored_blob = self.encoder.public_blob(public_key)
            db_fingerprint = fingerprint(public_key)
        except FormatError as e:
            logger.warning("stored_public_key_unparseable", error=e.message)
            stored_blob = None
            db_fingerprint = stored_fingerprint

        public_key_matches = stored_blob == derived_blob
        fingerprints_agree = db_fingerprint == derived_fingerprint and (
            stored_fingerprint is None or stored_fingerprint == derived_fingerprint
        )

        if public_key_matches and fingerprints_agree:
            return Match(fingerprint=derived_fingerprint)

        logger.warning(
            "key_consistency_mismatch",
            db_fingerprint=db_fingerprint,
            derived_fingerprint=derived_fingerprint,
            stored_fingerprint=stored_fingerprint,
            public_key_matches=public_key_matches,
        )
        return Mismatch(
            db_fingerprint=db_fingerprint,
            derived_fingerprint=derived_fingerprint,
            stored_fingerprint=stored_fingerprint,
            public_key_matches=public_key_matches,
        )
