"""
SecureComm Node Core

Per-node facade handed to the transport layer. Holds the node identity
and configuration explicitly (no module-level state) and keeps one
secure channel per connected peer.

Lifecycle:
    core = SecureCommCore(Config.load(path))
    pending = core.begin_handshake(peer_id)
    ... exchange pending.message() with the peer ...
    channel = core.complete_handshake(pending, peer_message, peer_public)
    ...
    core.shutdown()   # closes channels, destroys the identity
"""

import logging
import threading
from typing import Dict, List, Optional, Union

from .config import Config
from .crypto.channel import SecureChannel
from .crypto.errors import SecureCommError
from .crypto.handshake import (
    HandshakeMessage,
    PendingHandshake,
    begin_handshake,
    complete_handshake,
)
from .crypto.keys import IdentityKeyPair, PeerId


logger = logging.getLogger(__name__)


class SecureCommCore:
    """
    Identity, handshakes and channels of one node.

    Thread-safe: the transport may run handshakes for different peers
    from different threads.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        identity: Optional[IdentityKeyPair] = None,
    ):
        """
        Initialize the core.

        Args:
            config: Configuration (defaults if None); validated here
            identity: Existing identity, or generate a new one

        Raises:
            ValueError: If the configuration is invalid
            RandomSourceError: If a new identity cannot be generated
        """
        self._config = config or Config()
        self._config.validate()

        self._identity = identity or IdentityKeyPair.generate()
        self._channels: Dict[PeerId, SecureChannel] = {}
        self._pending: Dict[PeerId, List[PendingHandshake]] = {}
        self._lock = threading.RLock()
        self._running = True

        logger.info(f"Node identity {self._identity.peer_id()}")

    @property
    def identity(self) -> IdentityKeyPair:
        return self._identity

    @property
    def peer_id(self) -> PeerId:
        return self._identity.peer_id()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    def _check_running(self) -> None:
        if not self._running:
            raise SecureCommError("node has been shut down")

    def begin_handshake(self, peer_id: PeerId) -> PendingHandshake:
        """Start a handshake with a peer; send pending.message() to it."""
        with self._lock:
            self._check_running()
            self._prune_pending()
            pending = begin_handshake(self._identity, peer_id)
            self._pending.setdefault(peer_id, []).append(pending)
            return pending

    def abort_handshake(self, pending: PendingHandshake) -> None:
        """Give up on a handshake and zeroize its ephemeral secret."""
        with self._lock:
            pending.abort()
            self._forget_pending(pending)
        logger.debug(f"Handshake with peer {pending.peer_id.short()} aborted")

    def _forget_pending(self, pending: PendingHandshake) -> None:
        waiting = self._pending.get(pending.peer_id, [])
        if pending in waiting:
            waiting.remove(pending)
        if not waiting:
            self._pending.pop(pending.peer_id, None)

    def _prune_pending(self) -> None:
        # Handshakes aborted directly on the PendingHandshake
        for peer_id in list(self._pending):
            alive = [p for p in self._pending[peer_id] if not p.is_finished]
            if alive:
                self._pending[peer_id] = alive
            else:
                del self._pending[peer_id]

    def complete_handshake(
        self,
        pending: PendingHandshake,
        peer_message: Union[HandshakeMessage, bytes],
        peer_identity_public: bytes,
    ) -> SecureChannel:
        """
        Finish a handshake and register the resulting channel.

        A previous channel to the same peer is closed and replaced.

        Raises:
            AuthenticationFailed: See complete_handshake()
            InvalidPublicKey: See complete_handshake()
        """
        with self._lock:
            self._check_running()
            self._forget_pending(pending)

            channel = complete_handshake(
                pending,
                peer_message,
                peer_identity_public,
                config=self._config.channel,
            )

            previous = self._channels.get(pending.peer_id)
            if previous is not None:
                logger.info(f"Replacing channel to peer {pending.peer_id.short()}")
                previous.close()

            self._channels[pending.peer_id] = channel
            return channel

    def channel_for(self, peer_id: PeerId) -> Optional[SecureChannel]:
        """Open channel to a peer, if any."""
        with self._lock:
            channel = self._channels.get(peer_id)
            if channel is not None and channel.is_closed:
                del self._channels[peer_id]
                return None
            return channel

    def close_channel(self, peer_id: PeerId) -> bool:
        """
        Close the channel to a peer.

        Returns:
            True if a channel was open
        """
        with self._lock:
            channel = self._channels.pop(peer_id, None)
        if channel is None:
            return False
        channel.close()
        return True

    def peers(self) -> List[PeerId]:
        """Peers with an open channel."""
        with self._lock:
            return [p for p, c in self._channels.items() if not c.is_closed]

    def shutdown(self) -> None:
        """
        Close every channel, abort pending handshakes and destroy the
        identity key. Safe to call more than once.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False

            for channel in self._channels.values():
                channel.close()
            self._channels.clear()

            for pending_list in self._pending.values():
                for pending in pending_list:
                    pending.abort()
            self._pending.clear()

            self._identity.destroy()

        logger.info("Node crypto core shut down")

    def get_stats(self) -> dict:
        with self._lock:
            self._prune_pending()
            return {
                "peer_id": str(self._identity.peer_id()),
                "channels": len(self._channels),
                "pending_handshakes": sum(len(p) for p in self._pending.values()),
                "running": self._running,
            }

    def __enter__(self) -> 'SecureCommCore':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
