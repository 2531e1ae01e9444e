"""Public key fingerprints in ssh-keygen formats"""

import base64
import binascii
import hashlib

from keycustody.core.errors import FormatError
from keycustody.core.keys.openssh import OpenSSHEncoder

_encoder = OpenSSHEncoder()


def _blob_bytes(line: str) -> bytes:
    payload = _encoder.public_blob(line).split(" ", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError("Public key data is not valid base64", {"error": str(e)}) from e


def fingerprint(line: str) -> str:
    """MD5 fingerprint as printed by ``ssh-keygen -l -E md5`` (without prefix)."""
    digest = hashlib.md5(_blob_bytes(line)).hexdigest()
    return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))


def sha256_fingerprint(line: str) -> str:
    """SHA256 fingerprint in the ssh-keygen default form, for display."""
    digest = hashlib.sha256(_blob_bytes(line)).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")
