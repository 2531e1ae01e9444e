"""Public key validation with the ssh-keygen binary"""

import asyncio
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Optional

from keycustody.core.config import settings
from keycustody.core.errors import KeyValidationError, ValidationUnavailable
from keycustody.infrastructure.logging import get_logger

logger = get_logger(__name__)


class KeyValidator(ABC):
    """OS-level check that a public key line is well formed"""

    @abstractmethod
    async def validate(self, public_key_line: str) -> str:
        """Validate a line and return the tool's description of it.

        Raises:
            KeyValidationError: the key was rejected
            ValidationUnavailable: the check could not be run
        """
        pass


class SshKeygenValidator(KeyValidator):
    """Runs ``ssh-keygen -l -f`` on a temporary copy of the public key."""

    def __init__(
        self,
        ssh_keygen_path: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.ssh_keygen_path = ssh_keygen_path or settings.ssh_keygen_path
        self.timeout = timeout if timeout is not None else settings.ssh_keygen_timeout_seconds

    async def validate(self, public_key_line: str) -> str:
        fd, tmp_path = tempfile.mkstemp(prefix="keycustody-", suffix=".pub")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(public_key_line.strip() + "\n")
            return await self._run(tmp_path)
        finally:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass

    async def _run(self, path: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                self.ssh_keygen_path, "-l", "-f", path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.warning("ssh_keygen_unavailable", path=self.ssh_keygen_path, error=str(e))
            raise ValidationUnavailable(
                f"ssh-keygen not available: {e}", {"path": self.ssh_keygen_path}
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            logger.warning("ssh_keygen_timeout", timeout=self.timeout)
            raise ValidationUnavailable(
                f"ssh-keygen timed out after {self.timeout}s", {"timeout": self.timeout}
            ) from e

        output = stdout.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            reason = stderr.decode("utf-8", errors="replace").strip() or output
            logger.error("ssh_keygen_rejected_key", returncode=process.returncode, reason=reason)
            raise KeyValidationError(reason or f"exit status {process.returncode}")

        logger.debug("ssh_keygen_validated", description=output)
        return output
