"""Tests for public key fingerprints"""

import pytest

from keycustody.core.errors import FormatError
from keycustody.core.keys.fingerprint import fingerprint, sha256_fingerprint
from tests.keydata import PUBLIC_RSA_BLOB, PUBLIC_RSA_MD5, PUBLIC_RSA_OPENSSH, PUBLIC_RSA_SHA256


def test_md5_fingerprint_known_key():
    assert fingerprint(PUBLIC_RSA_OPENSSH) == PUBLIC_RSA_MD5


def test_md5_fingerprint_ignores_comment():
    assert fingerprint(f"ssh-rsa {PUBLIC_RSA_BLOB}") == PUBLIC_RSA_MD5
    assert fingerprint(f"ssh-rsa {PUBLIC_RSA_BLOB} other@host\n") == PUBLIC_RSA_MD5


def test_md5_fingerprint_shape():
    parts = fingerprint(PUBLIC_RSA_OPENSSH).split(":")
    assert len(parts) == 16
    assert all(len(p) == 2 and p == p.lower() for p in parts)


def test_sha256_fingerprint_known_key():
    value = sha256_fingerprint(PUBLIC_RSA_OPENSSH)
    assert value == PUBLIC_RSA_SHA256
    assert not value.endswith("=")


@pytest.mark.parametrize("line", ["", "ssh-rsa", "ssh-rsa !!!", f"ssh-ed25519 {PUBLIC_RSA_BLOB}"])
def test_invalid_lines_rejected(line):
    with pytest.raises(FormatError):
        fingerprint(line)
