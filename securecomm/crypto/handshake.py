"""
SecureComm Handshake

Authenticated ephemeral key exchange between two peers that already
know each other's identity public key (from discovery).

Protocol (symmetric, both sides run the same steps):
1. begin_handshake(): generate an ephemeral X25519 key and a 16-byte
   freshness nonce, sign (ephemeral_public || peer_id || nonce)
2. Send the HandshakeMessage to the peer
3. complete_handshake(): check the peer's identity and signature,
   compute the shared secret, derive the session key over the
   transcript and build the SecureChannel

Handshake message format (145 bytes):
    version          (1 byte)
    identity_public  (32 bytes) - Ed25519 public key of the sender
    ephemeral_public (32 bytes) - X25519 public key of the sender
    nonce            (16 bytes) - Freshness nonce
    signature        (64 bytes) - Ed25519 over the binding message
"""

import logging
import struct
from dataclasses import dataclass
from typing import Optional, Union

from ..config import ChannelConfig
from .agreement import (
    KeyAgreement,
    HandshakeParty,
    build_transcript,
    channel_id,
)
from .auth import Authenticator
from .channel import Direction, SecureChannel
from .errors import AuthenticationFailed, InvalidPublicKey
from .keys import EphemeralKeyPair, IdentityKeyPair, PeerId
from .primitives import (
    constant_time_compare,
    random_bytes,
    ED25519_KEY_SIZE,
)


logger = logging.getLogger(__name__)

HANDSHAKE_VERSION = 1
FRESHNESS_NONCE_SIZE = 16

_MESSAGE_FORMAT = ">B32s32s16s64s"
HANDSHAKE_MESSAGE_SIZE = struct.calcsize(_MESSAGE_FORMAT)  # = 145 bytes

_HANDSHAKE_FAILED = "handshake authentication failed"


@dataclass
class HandshakeMessage:
    """Handshake message sent to the peer."""
    identity_public: bytes   # 32 bytes
    ephemeral_public: bytes  # 32 bytes
    nonce: bytes             # 16 bytes
    signature: bytes         # 64 bytes
    version: int = HANDSHAKE_VERSION

    def to_bytes(self) -> bytes:
        """Serialize to wire format."""
        if (len(self.identity_public), len(self.ephemeral_public),
                len(self.nonce), len(self.signature)) != (32, 32, FRESHNESS_NONCE_SIZE, 64):
            raise ValueError("Handshake message field has wrong length")
        return struct.pack(
            _MESSAGE_FORMAT,
            self.version,
            self.identity_public,
            self.ephemeral_public,
            self.nonce,
            self.signature,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> 'HandshakeMessage':
        """
        Parse from wire format.

        Raises:
            AuthenticationFailed: On wrong length or unknown version
        """
        if len(data) != HANDSHAKE_MESSAGE_SIZE:
            raise AuthenticationFailed(_HANDSHAKE_FAILED)

        version, identity_public, ephemeral_public, nonce, signature = struct.unpack(
            _MESSAGE_FORMAT, bytes(data)
        )

        if version != HANDSHAKE_VERSION:
            raise AuthenticationFailed(_HANDSHAKE_FAILED)

        return cls(
            identity_public=identity_public,
            ephemeral_public=ephemeral_public,
            nonce=nonce,
            signature=signature,
            version=version,
        )


@dataclass(eq=False)
class PendingHandshake:
    """
    Local state between begin_handshake() and complete_handshake().

    Owns the ephemeral secret; the secret is consumed when the
    handshake completes or is aborted.
    """
    identity: IdentityKeyPair
    peer_id: PeerId
    ephemeral: EphemeralKeyPair
    nonce: bytes
    signature: bytes

    @property
    def ephemeral_public(self) -> bytes:
        return self.ephemeral.public_bytes

    @property
    def is_finished(self) -> bool:
        return self.ephemeral.is_consumed

    def message(self) -> HandshakeMessage:
        """Outbound handshake message for the peer."""
        return HandshakeMessage(
            identity_public=self.identity.verifying_public,
            ephemeral_public=self.ephemeral.public_bytes,
            nonce=self.nonce,
            signature=self.signature,
        )

    def abort(self) -> None:
        """Discard the handshake and zeroize the ephemeral secret."""
        self.ephemeral.wipe()


def begin_handshake(identity: IdentityKeyPair, peer_id: PeerId) -> PendingHandshake:
    """
    Start a handshake with a peer.

    Args:
        identity: Our long-term identity
        peer_id: Identifier of the peer we are connecting to

    Returns:
        PendingHandshake: Holds the ephemeral key, nonce and signature
    """
    ephemeral = KeyAgreement.generate_ephemeral()
    nonce = random_bytes(FRESHNESS_NONCE_SIZE)
    signature = Authenticator.sign_binding(identity, ephemeral.public_bytes, peer_id, nonce)

    logger.debug(f"Handshake started with peer {peer_id.short()}")

    return PendingHandshake(
        identity=identity,
        peer_id=peer_id,
        ephemeral=ephemeral,
        nonce=nonce,
        signature=signature,
    )


def complete_handshake(
    pending: PendingHandshake,
    peer_message: Union[HandshakeMessage, bytes],
    peer_identity_public: bytes,
    config: Optional[ChannelConfig] = None,
) -> SecureChannel:
    """
    Finish a handshake and build the secure channel.

    Args:
        pending: Our state from begin_handshake()
        peer_message: HandshakeMessage from the peer, or its wire bytes
        peer_identity_public: The peer's known Ed25519 public key
        config: Channel configuration

    Returns:
        SecureChannel: Ready for seal/open

    Raises:
        AuthenticationFailed: If the peer is not who we expect or its
            signature does not cover its ephemeral key, or the wire
            bytes are malformed
        InvalidPublicKey: If the peer's ephemeral key is degenerate
    """
    try:
        return _complete(pending, peer_message, peer_identity_public, config)
    except AuthenticationFailed:
        logger.warning(f"Handshake with peer {pending.peer_id.short()} rejected: authentication failed")
        raise
    except InvalidPublicKey:
        logger.warning(f"Handshake with peer {pending.peer_id.short()} rejected: invalid public key")
        raise
    finally:
        pending.abort()


def _complete(
    pending: PendingHandshake,
    peer_message: Union[HandshakeMessage, bytes],
    peer_identity_public: bytes,
    config: Optional[ChannelConfig],
) -> SecureChannel:
    if not isinstance(peer_message, HandshakeMessage):
        peer_message = HandshakeMessage.from_bytes(peer_message)

    if len(peer_identity_public) != ED25519_KEY_SIZE:
        raise AuthenticationFailed(_HANDSHAKE_FAILED)

    # The message must come from the identity we were told about,
    # and that identity must be the peer this handshake was begun for.
    if not constant_time_compare(peer_message.identity_public, peer_identity_public):
        raise AuthenticationFailed(_HANDSHAKE_FAILED)
    if not constant_time_compare(PeerId.from_public_key(peer_identity_public).value, pending.peer_id.value):
        raise AuthenticationFailed(_HANDSHAKE_FAILED)

    local_peer_id = pending.identity.peer_id()
    if not Authenticator.verify_binding(
        peer_identity_public,
        peer_message.ephemeral_public,
        local_peer_id,
        peer_message.nonce,
        peer_message.signature,
    ):
        raise AuthenticationFailed(_HANDSHAKE_FAILED)

    local_public = pending.ephemeral.public_bytes
    remote_public = bytes(peer_message.ephemeral_public)

    # A reflected message would carry our own ephemeral key
    if constant_time_compare(local_public, remote_public):
        raise InvalidPublicKey("Invalid public key")

    shared = KeyAgreement.compute_shared_secret(pending.ephemeral, remote_public)
    try:
        transcript = build_transcript(
            HandshakeParty(local_peer_id.value, local_public, pending.nonce),
            HandshakeParty(pending.peer_id.value, remote_public, bytes(peer_message.nonce)),
        )
        session_key = KeyAgreement.derive_session_key(shared, transcript)
    finally:
        shared.wipe()

    send_direction = Direction.LOW if local_public < remote_public else Direction.HIGH
    chan_id = channel_id(transcript)

    logger.info(
        f"Handshake complete with peer {pending.peer_id.short()} "
        f"(channel {chan_id.hex()[:8]})"
    )

    return SecureChannel(
        session_key,
        send_direction,
        config=config,
        channel_id=chan_id,
        peer_id=pending.peer_id,
    )
