"""
SecureComm Secure Channel

Authenticated encryption of application payloads over an established
session, using ChaCha20-Poly1305.

Sealed message format:
    nonce (12 bytes) || ciphertext || tag (16 bytes)

Nonce format:
    direction (1 byte) || counter (11 bytes, big-endian)

Associated data is authenticated but never transmitted; the receiver
must supply the same bytes (e.g. a sequence number or channel epoch).

SECURITY NOTES:
- Nonces come from a per-direction counter, never from randomness, so a
  (key, nonce) pair cannot repeat
- The two peers use different direction bytes, so their nonce spaces
  are disjoint under the shared key
- Every open() failure is the same AuthenticationFailed error
- The session key is zeroized on close()
"""

import logging
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from ..config import ChannelConfig, MAX_NONCE_COUNTER
from .agreement import SessionKey
from .errors import (
    AuthenticationFailed,
    ChannelClosed,
    NonceExhausted,
    ReplayDetected,
)
from .keys import PeerId
from .primitives import CHACHA20_NONCE_SIZE, POLY1305_TAG_SIZE
from .replay import ReplayWindow


logger = logging.getLogger(__name__)

COUNTER_SIZE = CHACHA20_NONCE_SIZE - 1
MIN_SEALED_SIZE = CHACHA20_NONCE_SIZE + POLY1305_TAG_SIZE

_AUTH_FAILED = "message authentication failed"


class Direction(IntEnum):
    """Nonce direction byte."""
    LOW = 0x01   # Sent by the party whose ephemeral key sorts first
    HIGH = 0x02  # Sent by the other party

    def opposite(self) -> 'Direction':
        return Direction.HIGH if self is Direction.LOW else Direction.LOW


class ChannelState(IntEnum):
    """Channel lifecycle state."""
    ESTABLISHED = 1
    CLOSED = 2


@dataclass
class SealedMessage:
    """
    Output of SecureChannel.seal().

    The ciphertext includes the 16-byte Poly1305 tag.
    """
    nonce: bytes       # 12 bytes
    ciphertext: bytes  # Variable length (includes tag)

    @property
    def counter(self) -> int:
        return int.from_bytes(self.nonce[1:], "big")

    @property
    def total_size(self) -> int:
        """Total wire size in bytes."""
        return len(self.nonce) + len(self.ciphertext)

    def to_bytes(self) -> bytes:
        """Serialize to wire format."""
        return self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, data: bytes) -> 'SealedMessage':
        """
        Parse from wire format.

        Raises:
            AuthenticationFailed: If data is too short to hold nonce and tag
        """
        if len(data) < MIN_SEALED_SIZE:
            raise AuthenticationFailed(_AUTH_FAILED)
        data = bytes(data)
        return cls(
            nonce=data[:CHACHA20_NONCE_SIZE],
            ciphertext=data[CHACHA20_NONCE_SIZE:],
        )


class NonceCounter:
    """
    Monotonic nonce source for one send direction.

    Never hands out the same nonce twice; raises NonceExhausted once
    the counter passes its limit.
    """

    def __init__(self, direction: Direction, start: int = 0, limit: int = MAX_NONCE_COUNTER):
        if not 0 <= start <= limit <= MAX_NONCE_COUNTER:
            raise ValueError("Invalid nonce counter range")
        self._prefix = bytes([Direction(direction)])
        self._next = start
        self._limit = limit

    @property
    def value(self) -> int:
        """Counter that the next nonce will carry."""
        return self._next

    @property
    def remaining(self) -> int:
        return max(0, self._limit - self._next + 1)

    def next(self) -> bytes:
        """
        Return the next 12-byte nonce.

        Raises:
            NonceExhausted: If the counter space is used up
        """
        if self._next > self._limit:
            raise NonceExhausted("nonce space exhausted")
        nonce = self._prefix + self._next.to_bytes(COUNTER_SIZE, "big")
        self._next += 1
        return nonce


class SecureChannel:
    """
    Authenticated encryption over one session key.

    Seal and open may run concurrently from two threads: each direction
    has its own counter, replay window and lock. The session key is
    shared read-only.

    Example:
        channel = SecureChannel(session_key, Direction.LOW)
        sealed = channel.seal(b"ping", b"seq=1")
        wire = sealed.to_bytes()

        # peer side
        plaintext = peer_channel.open(wire, b"seq=1")
    """

    def __init__(
        self,
        session_key: SessionKey,
        send_direction: Direction,
        config: Optional[ChannelConfig] = None,
        channel_id: bytes = b"",
        peer_id: Optional[PeerId] = None,
        send_counter: Optional[NonceCounter] = None,
    ):
        """
        Initialize the channel. Takes ownership of session_key.

        Args:
            session_key: Derived session key (wiped on close)
            send_direction: Direction byte stamped on our nonces
            config: Channel configuration (defaults if None)
            channel_id: Handshake identifier, used in logs
            peer_id: Remote peer, used in logs
            send_counter: Override the send counter (tests, resumption)
        """
        if session_key.is_wiped:
            raise ValueError("Session key has been wiped")

        self._config = config or ChannelConfig()
        self._session_key = session_key
        self._fingerprint = session_key.fingerprint()
        self._aead: Optional[ChaCha20Poly1305] = ChaCha20Poly1305(bytes(session_key))

        self._send_direction = Direction(send_direction)
        self._recv_direction = self._send_direction.opposite()
        self._send_counter = send_counter or NonceCounter(self._send_direction)
        self._replay = ReplayWindow(self._config.replay_window)

        self._channel_id = bytes(channel_id)
        self._peer_id = peer_id
        self._state = ChannelState.ESTABLISHED
        self._rekey_warned = False

        # Lock order: send before recv
        self._send_lock = threading.RLock()
        self._recv_lock = threading.RLock()

        # Statistics
        self._sealed = 0
        self._opened = 0
        self._auth_failures = 0

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == ChannelState.CLOSED

    @property
    def channel_id(self) -> bytes:
        return self._channel_id

    @property
    def peer_id(self) -> Optional[PeerId]:
        return self._peer_id

    @property
    def send_direction(self) -> Direction:
        return self._send_direction

    @property
    def key_fingerprint(self) -> bytes:
        """Fingerprint of the session key; equal on both peers."""
        return self._fingerprint

    @property
    def needs_rekey(self) -> bool:
        """True once the send counter reaches the configured threshold."""
        return self._send_counter.value >= self._config.rekey_after_messages

    def _label(self) -> str:
        if self._peer_id is not None:
            return f"peer {self._peer_id.short()}"
        return f"channel {self._channel_id.hex()[:8]}"

    def seal(self, plaintext: bytes, associated_data: bytes = b"") -> SealedMessage:
        """
        Encrypt and authenticate a payload.

        Args:
            plaintext: Payload to encrypt
            associated_data: Authenticated, not encrypted, not transmitted

        Returns:
            SealedMessage: nonce and ciphertext-with-tag

        Raises:
            ChannelClosed: If the channel has been closed
            NonceExhausted: If the send direction is out of nonces; the
                channel is closed before this is raised
        """
        with self._send_lock:
            if self._aead is None:
                raise ChannelClosed("channel is closed")

            try:
                nonce = self._send_counter.next()
            except NonceExhausted:
                logger.error(f"Nonce space exhausted on {self._label()}, closing channel")
                self.close()
                raise

            ciphertext = self._aead.encrypt(nonce, bytes(plaintext), bytes(associated_data))
            self._sealed += 1

            if not self._rekey_warned and self.needs_rekey:
                self._rekey_warned = True
                logger.warning(f"Rekey threshold reached on {self._label()}")

            return SealedMessage(nonce=nonce, ciphertext=ciphertext)

    def open(
        self,
        sealed: Union[SealedMessage, bytes],
        associated_data: bytes = b"",
    ) -> bytes:
        """
        Verify and decrypt a payload from the peer.

        Args:
            sealed: SealedMessage or its wire bytes
            associated_data: Must match what the sender bound

        Returns:
            bytes: Plaintext

        Raises:
            ChannelClosed: If the channel has been closed
            AuthenticationFailed: If the message does not authenticate,
                for whatever reason
            ReplayDetected: If the message was already opened
        """
        with self._recv_lock:
            if self._aead is None:
                raise ChannelClosed("channel is closed")

            try:
                if not isinstance(sealed, SealedMessage):
                    sealed = SealedMessage.from_bytes(sealed)
                nonce = bytes(sealed.nonce)
                if len(nonce) != CHACHA20_NONCE_SIZE or nonce[0] != self._recv_direction:
                    raise AuthenticationFailed(_AUTH_FAILED)
                plaintext = self._aead.decrypt(nonce, bytes(sealed.ciphertext), bytes(associated_data))
            except (AuthenticationFailed, InvalidTag):
                self._auth_failures += 1
                logger.debug(f"Dropped unauthenticated message on {self._label()}")
                raise AuthenticationFailed(_AUTH_FAILED) from None

            counter = int.from_bytes(nonce[1:], "big")
            if not self._replay.check_and_record(counter):
                logger.warning(f"Replay detected on {self._label()} (counter {counter})")
                raise ReplayDetected("message already received")

            self._opened += 1
            return plaintext

    def close(self) -> None:
        """
        Tear down the channel and zeroize the session key.

        Safe to call more than once.
        """
        with self._send_lock, self._recv_lock:
            if self._state == ChannelState.CLOSED:
                return
            self._state = ChannelState.CLOSED
            self._aead = None
            self._session_key.wipe()
            self._replay.clear()
        logger.debug(f"Closed {self._label()}")

    def get_stats(self) -> dict:
        """
        Get channel statistics.

        Returns:
            dict: state, messages sealed/opened, failures, replays
        """
        return {
            "state": self._state.name,
            "sealed": self._sealed,
            "opened": self._opened,
            "auth_failures": self._auth_failures,
            "replays": self._replay.get_stats()["replays"],
            "send_counter": self._send_counter.value,
        }

    def __enter__(self) -> 'SecureChannel':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        # Best-effort wipe if the owner dropped the channel without close()
        key = getattr(self, "_session_key", None)
        if key is not None and not key.is_wiped:
            key.wipe()

    def __repr__(self) -> str:
        return f"SecureChannel({self._label()}, {self._state.name})"
