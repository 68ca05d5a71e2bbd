"""
SecureComm Key Management

Handles:
- Node identity key generation (Ed25519, long-term)
- Ephemeral key generation (X25519, one per connection attempt)
- Peer identifier derivation

Key Types:
- Identity Key: Ed25519 signing key, lives for the node process
- Ephemeral Key: X25519 key, consumed by the first key agreement

The two are separate classes on purpose: signing and Diffie-Hellman
keys are never interchangeable.

SECURITY NOTES:
- Private keys are never logged and never appear in repr()
- Secret seeds are held in bytearrays and zeroized on release
- Zeroization is best-effort; backend key objects are dropped, not wiped
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
)
from cryptography.hazmat.primitives import serialization

from .errors import KeyMaterialDestroyed
from .primitives import (
    random_bytes,
    blake2b_hash,
    secure_zero,
    ED25519_KEY_SIZE,
    X25519_KEY_SIZE,
)


logger = logging.getLogger(__name__)

# Peer ID is the 32-byte BLAKE2b hash of the Ed25519 public key
PEER_ID_LENGTH = 32
PEER_ID_PERSON = b"securecomm-peer"


def _raw_public(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


@dataclass(frozen=True)
class PeerId:
    """
    Opaque, printable identifier of a node.

    Derived from the identity public key, so it is stable for the
    lifetime of the identity and cannot be chosen by a peer.
    """
    value: bytes

    def __post_init__(self):
        if len(self.value) != PEER_ID_LENGTH:
            raise ValueError(
                f"Invalid peer ID length: {len(self.value)} (expected {PEER_ID_LENGTH})"
            )

    @classmethod
    def from_public_key(cls, public_key: bytes) -> 'PeerId':
        """Derive the peer ID of a raw 32-byte Ed25519 public key."""
        return cls(derive_peer_id(public_key))

    @classmethod
    def from_hex(cls, text: str) -> 'PeerId':
        return cls(bytes.fromhex(text))

    def short(self) -> str:
        """First 8 hex characters, for log lines."""
        return self.value.hex()[:8]

    def __bytes__(self) -> bytes:
        return self.value

    def __str__(self) -> str:
        return self.value.hex()

    def __repr__(self) -> str:
        return f"PeerId({self.short()}...)"


def derive_peer_id(public_key_bytes: bytes) -> bytes:
    """
    Derive a peer ID from Ed25519 public key bytes.

    PeerID = BLAKE2b-256(public_key, person="securecomm-peer")

    Args:
        public_key_bytes: 32-byte Ed25519 public key

    Returns:
        bytes: 32-byte peer ID
    """
    if len(public_key_bytes) != ED25519_KEY_SIZE:
        raise ValueError(
            f"Invalid public key length: {len(public_key_bytes)} (expected {ED25519_KEY_SIZE})"
        )

    return blake2b_hash(
        bytes(public_key_bytes),
        digest_size=PEER_ID_LENGTH,
        person=PEER_ID_PERSON,
    )


class IdentityKeyPair:
    """
    Long-term Ed25519 identity of a node.

    Created once at startup and passed explicitly to whatever needs to
    sign or publish the node's identifier. Call destroy() at shutdown
    to zeroize the signing seed.
    """

    def __init__(self, seed: bytearray):
        """
        Initialize identity from a 32-byte Ed25519 seed.

        Takes ownership of the bytearray; it is zeroized by destroy().
        """
        if not isinstance(seed, bytearray):
            raise TypeError("Seed must be a bytearray so it can be zeroized")
        if len(seed) != ED25519_KEY_SIZE:
            raise ValueError(f"Invalid seed length: {len(seed)} (expected {ED25519_KEY_SIZE})")

        self._seed = seed
        self._signing_key: Optional[Ed25519PrivateKey] = Ed25519PrivateKey.from_private_bytes(
            bytes(seed)
        )
        self._verifying_key: Ed25519PublicKey = self._signing_key.public_key()
        self._verifying_public = _raw_public(self._verifying_key)
        self._peer_id = PeerId.from_public_key(self._verifying_public)

    @classmethod
    def generate(cls) -> 'IdentityKeyPair':
        """
        Generate a new node identity from the kernel CSPRNG.

        Raises:
            RandomSourceError: If no random bytes are available
        """
        identity = cls(bytearray(random_bytes(ED25519_KEY_SIZE)))
        logger.debug(f"Generated identity {identity.peer_id().short()}")
        return identity

    def peer_id(self) -> PeerId:
        return self._peer_id

    @property
    def verifying_public(self) -> bytes:
        """Ed25519 public key as 32 raw bytes."""
        return self._verifying_public

    @property
    def verifying_key(self) -> Ed25519PublicKey:
        return self._verifying_key

    @property
    def is_destroyed(self) -> bool:
        return self._signing_key is None

    def sign(self, message: bytes) -> bytes:
        """Sign a message; see Authenticator.sign."""
        from .auth import Authenticator
        return Authenticator.sign(self, message)

    def _private_key(self) -> Ed25519PrivateKey:
        if self._signing_key is None:
            raise KeyMaterialDestroyed("Identity key has been destroyed")
        return self._signing_key

    def destroy(self) -> None:
        """Zeroize the signing seed and drop the private key object."""
        if self._signing_key is None:
            return
        secure_zero(self._seed)
        self._signing_key = None
        logger.debug(f"Destroyed identity {self._peer_id.short()}")

    def __repr__(self) -> str:
        state = "destroyed" if self.is_destroyed else "active"
        return f"IdentityKeyPair(peer_id={self._peer_id.short()}..., {state})"


class EphemeralKeyPair:
    """
    Ephemeral X25519 key pair for a single connection attempt.

    The secret is consumed by the first key agreement that uses it,
    successful or not, so it can never be reused.
    """

    def __init__(self, secret: bytearray):
        if not isinstance(secret, bytearray):
            raise TypeError("Secret must be a bytearray so it can be zeroized")
        if len(secret) != X25519_KEY_SIZE:
            raise ValueError(f"Invalid secret length: {len(secret)} (expected {X25519_KEY_SIZE})")

        self._secret = secret
        self._private: Optional[X25519PrivateKey] = X25519PrivateKey.from_private_bytes(
            bytes(secret)
        )
        self._public_bytes = _raw_public(self._private.public_key())

    @classmethod
    def generate(cls) -> 'EphemeralKeyPair':
        """Generate a fresh ephemeral key pair from the kernel CSPRNG."""
        return cls(bytearray(random_bytes(X25519_KEY_SIZE)))

    @property
    def public_bytes(self) -> bytes:
        """Get public key as bytes (32 bytes)."""
        return self._public_bytes

    @property
    def is_consumed(self) -> bool:
        return self._private is None

    def consume(self) -> X25519PrivateKey:
        """
        Hand out the private key exactly once and zeroize the seed.

        Raises:
            KeyMaterialDestroyed: If the key was already consumed
        """
        if self._private is None:
            raise KeyMaterialDestroyed("Ephemeral key already consumed")
        private = self._private
        self.wipe()
        return private

    def wipe(self) -> None:
        secure_zero(self._secret)
        self._private = None

    def __repr__(self) -> str:
        state = "consumed" if self.is_consumed else "fresh"
        return f"EphemeralKeyPair(public={self._public_bytes.hex()[:8]}..., {state})"
