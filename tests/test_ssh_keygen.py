"""Tests for ssh-keygen based public key validation"""

import shutil

import pytest

from keycustody.core.errors import KeyValidationError, ValidationUnavailable
from keycustody.infrastructure.ssh_keygen import SshKeygenValidator
from tests.keydata import PUBLIC_RSA_OPENSSH

requires_ssh_keygen = pytest.mark.skipif(
    shutil.which("ssh-keygen") is None, reason="ssh-keygen not installed"
)


@pytest.mark.asyncio
async def test_missing_binary_is_unavailable(tmp_path):
    validator = SshKeygenValidator(str(tmp_path / "no-such-ssh-keygen"), timeout=5)
    with pytest.raises(ValidationUnavailable):
        await validator.validate(PUBLIC_RSA_OPENSSH)


@requires_ssh_keygen
@pytest.mark.asyncio
async def test_accepts_valid_key():
    output = await SshKeygenValidator("ssh-keygen", timeout=10).validate(PUBLIC_RSA_OPENSSH)
    assert "2048" in output


@requires_ssh_keygen
@pytest.mark.asyncio
async def test_rejects_garbage():
    with pytest.raises(KeyValidationError):
        await SshKeygenValidator("ssh-keygen", timeout=10).validate("ssh-rsa AAAAnotakey")
