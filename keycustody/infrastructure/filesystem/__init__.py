"""Key file handling."""
from .key_files import (
    FileKeySource,
    KeyFilePaths,
    KeyFileStore,
    PrivateKeySource,
    export_to_directory,
    load_public_key_text,
    write_atomic,
)

__all__ = [
    'FileKeySource',
    'KeyFilePaths',
    'KeyFileStore',
    'PrivateKeySource',
    'export_to_directory',
    'load_public_key_text',
    'write_atomic',
]
