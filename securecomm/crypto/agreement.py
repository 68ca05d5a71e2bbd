"""
SecureComm Key Agreement

X25519 Diffie-Hellman between ephemeral keys, followed by HKDF-SHA256
over a handshake transcript. The raw shared secret is never used as an
encryption key.

Transcript format:
    "securecomm-transcript-v1"
    || for each party, sorted by ephemeral public key:
           peer_id (32) || ephemeral_public (32) || nonce (16)

Sorting makes the transcript identical on both sides without either
peer having to agree on who initiated.

SECURITY NOTES:
- Known small-order X25519 points are rejected before the exchange
- An all-zero shared secret is rejected after the exchange
- Local ephemeral secrets are consumed by compute_shared_secret()
"""

import logging
from typing import NamedTuple, Union

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PublicKey

from .errors import InvalidPublicKey, KeyMaterialDestroyed
from .keys import EphemeralKeyPair
from .primitives import (
    blake2b_hash,
    constant_time_compare,
    hkdf_derive,
    secure_zero,
    CHACHA20_KEY_SIZE,
    X25519_KEY_SIZE,
)


logger = logging.getLogger(__name__)

# Domain separation constants for HKDF
TRANSCRIPT_LABEL = b"securecomm-transcript-v1"
SESSION_KEY_INFO = b"securecomm-session-key-v1"

CHANNEL_ID_LENGTH = 16
FINGERPRINT_LENGTH = 16

# Encodings of points of order 1, 2, 4 and 8 on Curve25519, plus the
# non-canonical encodings of p-1, p and p+1. Compared with the top bit of
# the last byte masked off, so the high-bit variants are caught as well.
SMALL_ORDER_POINTS = tuple(bytes.fromhex(h) for h in (
    "0000000000000000000000000000000000000000000000000000000000000000",
    "0100000000000000000000000000000000000000000000000000000000000000",
    "e0eb7a7c3b41b8ae1656e3faf19fc46ada098deb9c32b1fd866205165f49b800",
    "5f9c95bca3508c24b1d0b1559c83ef5b04445cc4581c8e86d8224eddd09f1157",
    "ecffffffffffffffffffffffffffffffffffffffffffffffffffffffffffff7f",
    "edffffffffffffffffffffffffffffffffffffffffffffffffffffffffffff7f",
    "eeffffffffffffffffffffffffffffffffffffffffffffffffffffffffffff7f",
))

_ZERO_SECRET = bytes(X25519_KEY_SIZE)


def is_small_order(public_bytes: bytes) -> bool:
    """Check a 32-byte X25519 public key against the small-order list."""
    masked = bytes(public_bytes[:31]) + bytes([public_bytes[31] & 0x7F])
    found = False
    for point in SMALL_ORDER_POINTS:
        # No short-circuit: every entry is compared.
        found |= constant_time_compare(masked, point)
    return found


class _SecretBytes:
    """32-byte secret held in a zeroizable buffer."""

    _kind = "Secret"

    def __init__(self, data: Union[bytes, bytearray]):
        if len(data) != CHACHA20_KEY_SIZE:
            raise ValueError(f"{self._kind} must be {CHACHA20_KEY_SIZE} bytes")
        self._data = bytearray(data)
        self._wiped = False

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        secure_zero(self._data)
        self._wiped = True

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, _SecretBytes):
            return NotImplemented
        return constant_time_compare(self._data, other._data)

    __hash__ = None

    def __repr__(self) -> str:
        return f"{self._kind}(<redacted>)"


class SharedSecret(_SecretBytes):
    """Raw X25519 output. Only ever fed into derive_session_key()."""

    _kind = "SharedSecret"


class SessionKey(_SecretBytes):
    """32-byte AEAD key for one SecureChannel."""

    _kind = "SessionKey"

    def fingerprint(self) -> bytes:
        """16-byte digest of the key, safe to log or compare."""
        return blake2b_hash(bytes(self._data), digest_size=FINGERPRINT_LENGTH, person=b"securecomm-kfp")


class HandshakeParty(NamedTuple):
    """One side's contribution to the transcript."""
    peer_id: bytes
    ephemeral_public: bytes
    nonce: bytes


def build_transcript(*parties: HandshakeParty) -> bytes:
    """
    Serialize handshake parties into the transcript bound by the KDF.

    Args:
        parties: Both sides of the handshake, in any order

    Returns:
        bytes: Transcript (label followed by sorted parties)
    """
    parts = [TRANSCRIPT_LABEL]
    for party in sorted(parties, key=lambda p: bytes(p.ephemeral_public)):
        parts.append(bytes(party.peer_id))
        parts.append(bytes(party.ephemeral_public))
        parts.append(bytes(party.nonce))
    return b"".join(parts)


def channel_id(transcript: bytes) -> bytes:
    """Short identifier of a handshake instance, safe to log."""
    return blake2b_hash(transcript, digest_size=CHANNEL_ID_LENGTH, person=b"securecomm-chan")


class KeyAgreement:
    """Ephemeral X25519 agreement and session key derivation."""

    @staticmethod
    def generate_ephemeral() -> EphemeralKeyPair:
        """
        Generate a fresh ephemeral key pair.

        Never reuse the result for a second agreement; the key is
        consumed by compute_shared_secret() anyway.
        """
        return EphemeralKeyPair.generate()

    @staticmethod
    def compute_shared_secret(
        local_secret: EphemeralKeyPair,
        remote_public: bytes,
    ) -> SharedSecret:
        """
        Perform X25519 with our ephemeral secret and the peer's public key.

        The local secret is consumed even when the remote key is rejected.

        Args:
            local_secret: Our ephemeral key pair
            remote_public: Peer's 32-byte X25519 public key

        Returns:
            SharedSecret: 32-byte raw shared secret

        Raises:
            InvalidPublicKey: If the remote key is malformed or degenerate
            KeyMaterialDestroyed: If local_secret was already consumed
        """
        private = local_secret.consume()

        if len(remote_public) != X25519_KEY_SIZE:
            raise InvalidPublicKey("Invalid public key")

        if is_small_order(remote_public):
            logger.debug("Rejected small-order X25519 public key")
            raise InvalidPublicKey("Invalid public key")

        try:
            peer_key = X25519PublicKey.from_public_bytes(bytes(remote_public))
            raw = private.exchange(peer_key)
        except ValueError:
            # OpenSSL refuses exchanges that produce an all-zero secret
            raise InvalidPublicKey("Invalid public key") from None

        shared = SharedSecret(raw)
        if constant_time_compare(shared._data, _ZERO_SECRET):
            shared.wipe()
            raise InvalidPublicKey("Invalid public key")

        return shared

    @staticmethod
    def derive_session_key(shared_secret: SharedSecret, transcript: bytes) -> SessionKey:
        """
        Derive the session key from the shared secret and transcript.

        HKDF-SHA256 with the transcript as salt, so the key is unique to
        this handshake instance and to the exact pair of identities and
        ephemeral keys involved.

        Args:
            shared_secret: Output of compute_shared_secret()
            transcript: Output of build_transcript()

        Returns:
            SessionKey: 32-byte session key
        """
        if shared_secret.is_wiped:
            raise KeyMaterialDestroyed("Shared secret has been wiped")

        key = hkdf_derive(
            input_key_material=shared_secret._data,
            length=CHACHA20_KEY_SIZE,
            info=SESSION_KEY_INFO,
            salt=bytes(transcript),
        )
        return SessionKey(key)

