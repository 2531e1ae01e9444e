"""RSA keypair generation"""

from typing import FrozenSet

from cryptography.hazmat.primitives.asymmetric import rsa

from keycustody.core.errors import GenerationError
from keycustody.core.keys.key_types import KeyPair
from keycustody.core.keys.private_key import public_components, serialize_pkcs1
from keycustody.infrastructure.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_BITS: FrozenSet[int] = frozenset({2048, 3072, 4096})
PUBLIC_EXPONENT = 65537


class KeyPairGenerator:
    """Produces RSA keypairs with the private half in PKCS#1 PEM"""

    def __init__(self, public_exponent: int = PUBLIC_EXPONENT):
        self.public_exponent = public_exponent

    def generate(self, bits: int = 4096) -> KeyPair:
        """Generate a fresh keypair. Blocking; run it off the event loop.

        Raises:
            GenerationError: unsupported size or failure in the crypto backend
        """
        if bits not in SUPPORTED_BITS:
            raise GenerationError(
                f"Unsupported RSA modulus size: {bits}",
                {"bits": bits, "supported": sorted(SUPPORTED_BITS)},
            )

        try:
            key = rsa.generate_private_key(public_exponent=self.public_exponent, key_size=bits)
            private_key_pem = serialize_pkcs1(key)
            public = public_components(key)
        except (ValueError, TypeError, MemoryError) as e:
            logger.error("rsa_generation_failed", bits=bits, error=str(e))
            raise GenerationError(f"RSA key generation failed: {e}", {"bits": bits}) from e

        logger.debug("rsa_keypair_generated", bits=bits)
        return KeyPair(private_key_pem=private_key_pem, public=public, bits=bits)
