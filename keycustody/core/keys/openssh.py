"""OpenSSH public key line encoding for RSA keys"""

import base64
import binascii
import struct
from typing import List, Optional, Tuple

from keycustody.core.errors import FormatError
from keycustody.core.keys.key_types import DecodedPublicKey, RSAPublicComponents

SSH_RSA = "ssh-rsa"
_LENGTH = struct.Struct(">I")


def mpint(value: bytes) -> bytes:
    """Encode unsigned big-endian bytes as an SSH mpint payload.

    A single zero byte is prepended only when the high bit of the first byte
    is set, so the value is never read back as negative.
    """
    if value and value[0] & 0x80:
        return b"\x00" + value
    return value


def length_prefixed(buf: bytes) -> bytes:
    return _LENGTH.pack(len(buf)) + buf


class _BlobReader:
    """Walks length-prefixed fields of a wire blob"""

    def __init__(self, blob: bytes):
        self._blob = blob
        self._offset = 0

    def read_field(self, label: str) -> bytes:
        if self._offset + _LENGTH.size > len(self._blob):
            raise FormatError(
                f"Truncated public key blob reading {label} length",
                {"field": label, "offset": self._offset},
            )
        (length,) = _LENGTH.unpack_from(self._blob, self._offset)
        self._offset += _LENGTH.size
        if length > len(self._blob) - self._offset:
            raise FormatError(
                f"Declared {label} length exceeds remaining buffer",
                {"field": label, "declared": length, "remaining": len(self._blob) - self._offset},
            )
        value = self._blob[self._offset:self._offset + length]
        self._offset += length
        return value

    @property
    def remaining(self) -> int:
        return len(self._blob) - self._offset


def _unsign(value: bytes, label: str) -> bytes:
    if not value:
        raise FormatError(f"Empty {label} mpint", {"field": label})
    if value[0] & 0x80:
        raise FormatError(f"Negative {label} mpint", {"field": label})
    if value[0] == 0 and len(value) > 1:
        return value[1:]
    return value


class OpenSSHEncoder:
    """Converts RSA public components to and from ``ssh-rsa`` lines"""

    def wire_blob(self, n: bytes, e: bytes) -> bytes:
        if not n or not e:
            raise FormatError("RSA public components must not be empty")
        return (
            length_prefixed(SSH_RSA.encode("ascii"))
            + length_prefixed(mpint(e))
            + length_prefixed(mpint(n))
        )

    def encode(self, n: bytes, e: bytes, comment: Optional[str] = None) -> str:
        blob = base64.b64encode(self.wire_blob(n, e)).decode("ascii")
        line = f"{SSH_RSA} {blob}"
        if comment:
            line = f"{line} {comment}"
        return line

    def encode_components(
        self, components: RSAPublicComponents, comment: Optional[str] = None
    ) -> str:
        return self.encode(components.n, components.e, comment)

    def decode(self, line: str) -> DecodedPublicKey:
        """Parse an ``ssh-rsa <base64> [comment]`` line.

        Raises:
            FormatError: on any structural problem; nothing is partially parsed
        """
        algorithm, payload, comment = self._split(line)
        blob = self._b64decode(payload)

        reader = _BlobReader(blob)
        blob_algorithm = reader.read_field("algorithm")
        if blob_algorithm != SSH_RSA.encode("ascii"):
            raise FormatError(
                "Unsupported key algorithm in blob",
                {"algorithm": blob_algorithm.decode("ascii", "replace")},
            )
        e = _unsign(reader.read_field("exponent"), "exponent")
        n = _unsign(reader.read_field("modulus"), "modulus")
        if reader.remaining:
            raise FormatError(
                "Trailing bytes after public key blob", {"trailing": reader.remaining}
            )

        return DecodedPublicKey(algorithm=algorithm, n=n, e=e, comment=comment)

    def public_blob(self, line: str) -> str:
        """Return the ``ssh-rsa <base64>`` identity of a line, comment removed."""
        algorithm, payload, _ = self._split(line)
        return f"{algorithm} {payload}"

    def _split(self, line: str) -> Tuple[str, str, Optional[str]]:
        if not isinstance(line, str):
            raise FormatError("Public key line must be text")
        parts: List[str] = line.strip().split(None, 2)
        if len(parts) < 2:
            raise FormatError("Public key line must contain algorithm and key data")
        algorithm = parts[0]
        if algorithm != SSH_RSA:
            raise FormatError(
                "Unsupported key algorithm", {"algorithm": algorithm}
            )
        comment = parts[2].strip() if len(parts) == 3 else None
        return algorithm, parts[1], comment or None

    @staticmethod
    def _b64decode(payload: str) -> bytes:
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise FormatError("Public key data is not valid base64", {"error": str(e)}) from e


_encoder = OpenSSHEncoder()


def encode(n: bytes, e: bytes, comment: Optional[str] = None) -> str:
    return _encoder.encode(n, e, comment)


def decode(line: str) -> DecodedPublicKey:
    return _encoder.decode(line)


def public_blob(line: str) -> str:
    return _encoder.public_blob(line)
