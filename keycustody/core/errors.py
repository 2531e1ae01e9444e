"""Exception hierarchy for key custody operations"""

from typing import Any, Dict, Optional


class KeyCustodyError(Exception):
    """Base exception for all keycustody errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(KeyCustodyError):
    """Raised when configuration is invalid or incomplete"""
    pass


class GenerationError(KeyCustodyError):
    """Raised when an RSA keypair cannot be produced"""
    pass


class FormatError(KeyCustodyError):
    """Raised when key material is malformed"""
    pass


class KeyValidationError(FormatError):
    """Raised when the OS-level key tool rejects a public key"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Public key rejected by validator: {reason}", {"reason": reason})


class ValidationUnavailable(KeyCustodyError):
    """Raised when the OS-level key tool cannot be run"""
    pass


class DecryptionError(KeyCustodyError):
    """Raised when an encrypted private key cannot be decrypted"""
    pass


class ConsistencyMismatch(KeyCustodyError):
    """Raised when a stored public key does not belong to the stored private key"""

    def __init__(
        self,
        name: str,
        db_fingerprint: Optional[str],
        derived_fingerprint: Optional[str],
        reason: str = "public key does not match private key",
    ):
        self.name = name
        self.db_fingerprint = db_fingerprint
        self.derived_fingerprint = derived_fingerprint
        super().__init__(
            f"Key '{name}' is inconsistent: {reason} "
            f"(stored={db_fingerprint or '-'}, derived={derived_fingerprint or '-'})",
            {
                "name": name,
                "db_fingerprint": db_fingerprint,
                "derived_fingerprint": derived_fingerprint,
                "reason": reason,
            },
        )


class NoRecoverableKeyMaterial(KeyCustodyError):
    """Raised when secret rotation cannot recover the private key"""

    def __init__(self, name: str, attempted_sources: list):
        self.name = name
        self.attempted_sources = attempted_sources
        super().__init__(
            f"No source could recover the private key for '{name}'; "
            "regenerate the key or restore it manually",
            {"name": name, "attempted_sources": attempted_sources},
        )


class KeyNotFoundError(KeyCustodyError):
    """Raised when no active key record exists for a name"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Active SSH key not found: {name}", {"name": name})


class KeyAlreadyExistsError(KeyCustodyError):
    """Raised when creating a record for a name that already has an active key"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Active SSH key already exists: {name}", {"name": name})


class ConcurrentModificationError(KeyCustodyError):
    """Raised when a conditional write loses against a concurrent writer"""

    def __init__(self, name: str, expected_version: int):
        self.name = name
        self.expected_version = expected_version
        super().__init__(
            f"Key '{name}' was modified concurrently (expected version {expected_version})",
            {"name": name, "expected_version": expected_version},
        )


class KeyStoreError(KeyCustodyError):
    """Raised when the key store fails"""
    pass
