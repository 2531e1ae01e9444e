"""Encryption of private key material at rest (AES-256-CBC)"""

import binascii
import hashlib
import os
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from keycustody.core.errors import ConfigurationError, DecryptionError
from keycustody.core.keys.key_types import EncryptedBlob, EncryptedPrivateKey, wipe

IV_LENGTH = 16
BLOCK_SIZE = 16


def parse_encrypted(serialized: str) -> EncryptedPrivateKey:
    """Parse the ``ivHex:cipherHex`` at-rest form.

    Raises:
        DecryptionError: if the value is malformed
    """
    if not isinstance(serialized, str) or serialized.count(":") != 1:
        raise DecryptionError("Encrypted private key is not in iv:ciphertext form")
    iv_hex, ct_hex = serialized.strip().split(":")
    try:
        iv = binascii.unhexlify(iv_hex)
        ciphertext = binascii.unhexlify(ct_hex)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Encrypted private key is not valid hex") from e
    return EncryptedPrivateKey(iv=iv, ciphertext=ciphertext)


class KeyCipher:
    """Symmetric cipher for private keys, keyed by SHA-256 of a secret"""

    @staticmethod
    def derive_key(secret: str) -> bytes:
        if not secret:
            raise ConfigurationError("Encryption secret must not be empty")
        return hashlib.sha256(secret.encode("utf-8")).digest()

    def encrypt(self, plaintext: Union[bytes, bytearray, str], secret: str) -> EncryptedPrivateKey:
        key = self.derive_key(secret)
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = bytearray(padder.update(bytes(plaintext)) + padder.finalize())
        try:
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(bytes(padded)) + encryptor.finalize()
        finally:
            wipe(padded)
        return EncryptedPrivateKey(iv=iv, ciphertext=ciphertext)

    def decrypt(self, record: EncryptedBlob, secret: str) -> bytearray:
        """Decrypt a record or its serialized form.

        Raises:
            DecryptionError: wrong secret, corrupted or malformed ciphertext
            ConfigurationError: empty secret
        """
        key = self.derive_key(secret)
        if not isinstance(record, EncryptedPrivateKey):
            record = parse_encrypted(record)

        if len(record.iv) != IV_LENGTH:
            raise DecryptionError(
                "Invalid IV length", {"iv_length": len(record.iv)}
            )
        if not record.ciphertext or len(record.ciphertext) % BLOCK_SIZE:
            raise DecryptionError(
                "Ciphertext length is not a positive multiple of the block size",
                {"ciphertext_length": len(record.ciphertext)},
            )

        decryptor = Cipher(algorithms.AES(key), modes.CBC(record.iv)).decryptor()
        padded = bytearray(decryptor.update(record.ciphertext) + decryptor.finalize())
        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = bytearray(unpadder.update(bytes(padded)) + unpadder.finalize())
        except ValueError as e:
            raise DecryptionError("Invalid padding; wrong secret or corrupted data") from e
        finally:
            wipe(padded)
        return plaintext
