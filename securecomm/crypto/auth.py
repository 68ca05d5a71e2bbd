"""
SecureComm Authenticator

Ed25519 signing with the node identity and verification of peer
signatures. Used to bind an ephemeral X25519 key to a long-term
identity so a man in the middle cannot substitute its own.

Binding message (signed by each side for its own ephemeral key):
    "securecomm-handshake-v1" || ephemeral_public (32) || peer_id (32) || nonce (16)

where peer_id is the identifier of the peer the handshake is meant for.
"""

from typing import Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .keys import IdentityKeyPair, PeerId, PEER_ID_LENGTH
from .primitives import ED25519_KEY_SIZE, ED25519_SIGNATURE_SIZE, X25519_KEY_SIZE


BINDING_LABEL = b"securecomm-handshake-v1"


def binding_message(ephemeral_public: bytes, peer_id: Union[PeerId, bytes], nonce: bytes) -> bytes:
    """
    Build the byte string signed during the handshake.

    All fields are fixed width, so the concatenation is unambiguous.
    """
    peer_id = bytes(peer_id)
    if len(ephemeral_public) != X25519_KEY_SIZE:
        raise ValueError(f"Invalid ephemeral key length: {len(ephemeral_public)}")
    if len(peer_id) != PEER_ID_LENGTH:
        raise ValueError(f"Invalid peer ID length: {len(peer_id)}")
    return BINDING_LABEL + bytes(ephemeral_public) + peer_id + bytes(nonce)


class Authenticator:
    """Stateless Ed25519 sign/verify."""

    @staticmethod
    def sign(identity: IdentityKeyPair, message: bytes) -> bytes:
        """
        Sign a message with the identity key.

        Ed25519 is deterministic: the same (identity, message) pair
        always gives the same 64-byte signature.

        Raises:
            KeyMaterialDestroyed: If the identity has been destroyed
        """
        return identity._private_key().sign(bytes(message))

    @staticmethod
    def verify(
        public_key: Union[bytes, Ed25519PublicKey],
        message: bytes,
        signature: bytes,
    ) -> bool:
        """
        Verify an Ed25519 signature.

        Runs on attacker-controlled input, so it never raises: any
        malformed key, malformed signature or mismatch gives False.

        Args:
            public_key: 32-byte Ed25519 public key or key object
            message: Original message
            signature: 64-byte signature

        Returns:
            bool: True if signature is valid
        """
        try:
            if not isinstance(public_key, Ed25519PublicKey):
                if len(public_key) != ED25519_KEY_SIZE:
                    return False
                public_key = Ed25519PublicKey.from_public_bytes(bytes(public_key))
            if len(signature) != ED25519_SIGNATURE_SIZE:
                return False
            public_key.verify(bytes(signature), bytes(message))
            return True
        except Exception:
            return False

    @classmethod
    def sign_binding(
        cls,
        identity: IdentityKeyPair,
        ephemeral_public: bytes,
        peer_id: Union[PeerId, bytes],
        nonce: bytes,
    ) -> bytes:
        """Sign our ephemeral key for the given peer."""
        return cls.sign(identity, binding_message(ephemeral_public, peer_id, nonce))

    @classmethod
    def verify_binding(
        cls,
        peer_public: bytes,
        ephemeral_public: bytes,
        local_peer_id: Union[PeerId, bytes],
        nonce: bytes,
        signature: bytes,
    ) -> bool:
        """Check that the peer signed its ephemeral key for us."""
        try:
            message = binding_message(ephemeral_public, local_peer_id, nonce)
        except ValueError:
            return False
        return cls.verify(peer_public, message, signature)
