"""Owner-only key files: out-of-band sources, backups and exports."""
import os
import re
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import aiofiles
import aiofiles.os

from keycustody.core.errors import FormatError
from keycustody.core.keys.key_types import AdminCredential, wipe
from keycustody.core.keys.openssh import SSH_RSA, OpenSSHEncoder
from keycustody.core.keys.private_key import components_from_public_pem
from keycustody.infrastructure.exceptions import FilesystemError
from keycustody.infrastructure.logging import get_logger

logger = get_logger(__name__)

PRIVATE_FILE_MODE = 0o600
PUBLIC_FILE_MODE = 0o644

_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class KeyFilePaths:
    """Private and public file locations for one keypair"""
    private_path: Path
    public_path: Path


class PrivateKeySource(ABC):
    """Out-of-band source of a plaintext private key"""

    @abstractmethod
    async def read_private_key_file(self, path: PathLike) -> bytearray:
        pass


class FileKeySource(PrivateKeySource):
    """Reads private keys from local files."""

    async def read_private_key_file(self, path: PathLike) -> bytearray:
        """Read a private key file.

        Raises:
            FileNotFoundError: the file does not exist
            FilesystemError: the file exists but cannot be read
        """
        try:
            async with aiofiles.open(Path(path), "rb") as f:
                return bytearray(await f.read())
        except FileNotFoundError:
            raise
        except OSError as e:
            raise FilesystemError(f"Failed to read key file {path}: {e}") from e


async def write_atomic(path: Path, content: Union[bytes, bytearray], mode: int) -> Path:
    """Write ``content`` to ``path`` with ``mode``; readers never see a partial file."""
    path = Path(path)
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        os.chmod(tmp_path, mode)
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(bytes(content))
        await aiofiles.os.replace(tmp_path, path)
    except OSError as e:
        try:
            await aiofiles.os.remove(tmp_path)
        except FileNotFoundError:
            pass
        raise FilesystemError(f"Failed to write {path}: {e}") from e
    return path


def load_public_key_text(text: str, comment: Optional[str] = None) -> str:
    """Return an OpenSSH line for a public key backup.

    Older backups hold a PEM public key; those are converted here.
    """
    text = text.strip()
    if text.startswith(SSH_RSA + " "):
        return text
    if text.startswith("-----BEGIN"):
        components = components_from_public_pem(text)
        return OpenSSHEncoder().encode_components(components, comment)
    raise FormatError("Unrecognized public key backup format")


class KeyFileStore:
    """Backup and export files under one directory."""

    def __init__(self, directory: PathLike, source: Optional[PrivateKeySource] = None):
        self.directory = Path(directory)
        self.source = source or FileKeySource()

    def paths(self, prefix: str, directory: Optional[PathLike] = None) -> KeyFilePaths:
        if not _PREFIX_PATTERN.match(prefix):
            raise FilesystemError(f"Invalid key file prefix: {prefix!r}")
        base = Path(directory) if directory is not None else self.directory
        private_path = base / f"{prefix}_id_rsa"
        return KeyFilePaths(
            private_path=private_path,
            public_path=private_path.with_name(private_path.name + ".pub"),
        )

    async def save(
        self,
        prefix: str,
        private_key_pem: Union[bytes, bytearray],
        public_key_line: str,
        directory: Optional[PathLike] = None,
    ) -> KeyFilePaths:
        paths = self.paths(prefix, directory)
        await write_atomic(paths.private_path, private_key_pem, PRIVATE_FILE_MODE)
        await write_atomic(
            paths.public_path, (public_key_line.strip() + "\n").encode("utf-8"), PUBLIC_FILE_MODE
        )
        logger.info(
            "key_files_written",
            private_path=str(paths.private_path),
            public_path=str(paths.public_path),
        )
        return paths

    async def load(
        self, prefix: str, comment: Optional[str] = None
    ) -> Optional[Tuple[bytearray, str]]:
        """Load a backed-up keypair, or None when either file is missing."""
        paths = self.paths(prefix)
        try:
            private_pem = await self.source.read_private_key_file(paths.private_path)
        except FileNotFoundError:
            return None
        try:
            async with aiofiles.open(paths.public_path, "r", encoding="utf-8") as f:
                public_text = await f.read()
        except FileNotFoundError:
            wipe(private_pem)
            return None
        try:
            return private_pem, load_public_key_text(public_text, comment)
        except FormatError:
            wipe(private_pem)
            raise


async def export_to_directory(
    credential: AdminCredential, directory: PathLike, prefix: str = "admin"
) -> KeyFilePaths:
    """Write an exported credential as ``<prefix>_id_rsa`` (0600) and ``.pub``."""
    return await KeyFileStore(directory).save(
        prefix, credential.private_key_pem, credential.public_key_line
    )
