"""Tests for the OpenSSH public key codec"""

import base64
import struct

import pytest

from keycustody.core.errors import FormatError
from keycustody.core.keys.openssh import OpenSSHEncoder, length_prefixed, mpint
from keycustody.core.keys.private_key import components_from_private_pem
from tests.keydata import (
    PRIVATE_RSA_PKCS1,
    PUBLIC_RSA_BLOB,
    PUBLIC_RSA_OPENSSH,
    PUBLIC_RSA_WIRE_LENGTH,
)


@pytest.fixture
def encoder() -> OpenSSHEncoder:
    return OpenSSHEncoder()


@pytest.fixture
def components():
    return components_from_private_pem(PRIVATE_RSA_PKCS1)


def _line(blob: bytes) -> str:
    return "ssh-rsa " + base64.b64encode(blob).decode("ascii")


class TestMpint:
    """Test SSH mpint sign handling"""

    def test_pads_when_high_bit_set(self):
        assert mpint(b"\xd5\x6a") == b"\x00\xd5\x6a"

    def test_no_pad_when_high_bit_clear(self):
        assert mpint(b"\x01\x00\x01") == b"\x01\x00\x01"

    def test_length_prefix_is_big_endian(self):
        assert length_prefixed(b"ssh-rsa") == b"\x00\x00\x00\x07ssh-rsa"


class TestEncode:
    """Test encoding public components"""

    def test_matches_known_line(self, encoder, components):
        assert encoder.encode_components(components) == f"ssh-rsa {PUBLIC_RSA_BLOB}"

    def test_comment_appended(self, encoder, components):
        assert encoder.encode_components(components, "comment") == PUBLIC_RSA_OPENSSH

    def test_wire_blob_layout(self, encoder, components):
        blob = encoder.wire_blob(components.n, components.e)

        assert len(blob) == PUBLIC_RSA_WIRE_LENGTH
        assert blob[:11] == b"\x00\x00\x00\x07ssh-rsa"
        # exponent 65537 has no sign byte
        assert blob[11:18] == b"\x00\x00\x00\x03\x01\x00\x01"
        # modulus starts with 0xd5 so it carries one
        assert blob[18:22] == struct.pack(">I", 257)
        assert blob[22:24] == b"\x00\xd5"

    def test_empty_components_rejected(self, encoder):
        with pytest.raises(FormatError):
            encoder.encode(b"", b"\x01\x00\x01")


class TestDecode:
    """Test parsing public key lines"""

    def test_decode_known_line(self, encoder, components):
        decoded = encoder.decode(PUBLIC_RSA_OPENSSH)

        assert decoded.algorithm == "ssh-rsa"
        assert decoded.comment == "comment"
        assert decoded.e == b"\x01\x00\x01"
        assert decoded.n == components.n
        assert decoded.components == components

    def test_decode_without_comment(self, encoder):
        decoded = encoder.decode(f"ssh-rsa {PUBLIC_RSA_BLOB}")
        assert decoded.comment is None

    def test_comment_with_spaces_is_kept(self, encoder):
        decoded = encoder.decode(f"ssh-rsa {PUBLIC_RSA_BLOB} admin key for vms")
        assert decoded.comment == "admin key for vms"

    def test_public_blob_drops_comment(self, encoder):
        assert encoder.public_blob(PUBLIC_RSA_OPENSSH) == f"ssh-rsa {PUBLIC_RSA_BLOB}"

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "ssh-rsa",
            f"ssh-dss {PUBLIC_RSA_BLOB}",
            "ssh-rsa not*base64",
            "ssh-rsa AAAAB3NzaC1yc2E",
        ],
    )
    def test_malformed_lines(self, encoder, line):
        with pytest.raises(FormatError):
            encoder.decode(line)

    def test_blob_algorithm_must_be_rsa(self, encoder):
        blob = length_prefixed(b"ssh-dss") + length_prefixed(b"\x01") + length_prefixed(b"\x01")
        with pytest.raises(FormatError, match="algorithm"):
            encoder.decode(_line(blob))

    def test_declared_length_past_end(self, encoder):
        blob = length_prefixed(b"ssh-rsa") + struct.pack(">I", 1000) + b"\x01\x00\x01"
        with pytest.raises(FormatError, match="exceeds"):
            encoder.decode(_line(blob))

    def test_trailing_bytes(self, encoder, components):
        blob = encoder.wire_blob(components.n, components.e) + b"\x00"
        with pytest.raises(FormatError, match="Trailing"):
            encoder.decode(_line(blob))

    def test_negative_modulus(self, encoder):
        blob = (
            length_prefixed(b"ssh-rsa")
            + length_prefixed(b"\x01\x00\x01")
            + length_prefixed(b"\xd5\x6a\xac")
        )
        with pytest.raises(FormatError, match="Negative"):
            encoder.decode(_line(blob))

    def test_non_text_line(self, encoder):
        with pytest.raises(FormatError):
            encoder.decode(PUBLIC_RSA_OPENSSH.encode("ascii"))
