"""
SecureComm Cryptographic Primitives

Low-level cryptographic functions wrapping the cryptography library.

SECURITY NOTES:
- All randomness from os.urandom (kernel CSPRNG)
- All comparisons use constant-time operations
- Secret buffers are bytearrays so they can be overwritten

Dependencies:
- cryptography (OpenSSL backend)
"""

import os
import hmac
import hashlib
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import RandomSourceError


# Encryption constants
CHACHA20_KEY_SIZE = 32  # bytes
CHACHA20_NONCE_SIZE = 12  # bytes
POLY1305_TAG_SIZE = 16  # bytes
X25519_KEY_SIZE = 32  # bytes
ED25519_KEY_SIZE = 32  # bytes
ED25519_SIGNATURE_SIZE = 64  # bytes


def random_bytes(length: int) -> bytes:
    """
    Generate cryptographically secure random bytes.

    Uses os.urandom() which reads from the kernel's CSPRNG.

    Args:
        length: Number of random bytes to generate

    Returns:
        bytes: Cryptographically secure random bytes

    Raises:
        ValueError: If length is negative
        RandomSourceError: If the kernel CSPRNG is unavailable
    """
    if length < 0:
        raise ValueError("Length must be non-negative")
    try:
        return os.urandom(length)
    except (OSError, NotImplementedError) as e:
        raise RandomSourceError(f"Random source unavailable: {e}") from e


def blake2b_hash(
    data: bytes,
    digest_size: int = 32,
    key: Optional[bytes] = None,
    person: Optional[bytes] = None,
) -> bytes:
    """
    Compute BLAKE2b hash of data.

    Args:
        data: Data to hash
        digest_size: Output hash size in bytes (1-64, default 32)
        key: Optional key for keyed hashing (MAC mode)
        person: Optional personalization string (up to 16 bytes)

    Returns:
        bytes: BLAKE2b hash digest

    Raises:
        ValueError: If parameters are invalid
    """
    if not 1 <= digest_size <= 64:
        raise ValueError("Digest size must be 1-64 bytes")

    if key is not None and len(key) > 64:
        raise ValueError("Key must be at most 64 bytes")

    if person is not None and len(person) > 16:
        raise ValueError("Personalization must be at most 16 bytes")

    return hashlib.blake2b(
        data,
        digest_size=digest_size,
        key=key or b"",
        person=person or b"",
    ).digest()


def hkdf_derive(
    input_key_material: bytes,
    length: int,
    info: bytes,
    salt: Optional[bytes] = None,
) -> bytes:
    """
    Derive key material using HKDF-SHA256 (RFC 5869).

    Args:
        input_key_material: Source key material (e.g., ECDH shared secret)
        length: Desired output length in bytes
        info: Context/application-specific info (for domain separation)
        salt: Optional salt (can be public, e.g. a handshake transcript)

    Returns:
        bytes: Derived key material

    Raises:
        ValueError: If parameters are invalid
    """
    if length < 1:
        raise ValueError("Length must be at least 1")

    if length > 255 * 32:
        raise ValueError("Length too large for HKDF")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    )

    return hkdf.derive(input_key_material)


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Compare two byte strings in constant time.

    Uses hmac.compare_digest(), so comparison time does not depend
    on where the inputs differ.
    """
    return hmac.compare_digest(bytes(a), bytes(b))


def secure_zero(data: bytearray) -> None:
    """
    Overwrite a bytearray with zeros in place.

    Best-effort: copies made by the interpreter or by backend key
    objects are not reached. Only works with bytearray, not bytes.
    """
    for i in range(len(data)):
        data[i] = 0
