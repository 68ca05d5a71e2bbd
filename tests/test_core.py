"""
Integration tests for the node core.

Two nodes exchange handshake messages and payloads the way a transport
would, without any network.
"""

import os

import pytest

from securecomm.config import ChannelConfig, Config
from securecomm.core import SecureCommCore
from securecomm.crypto import (
    AuthenticationFailed,
    ChannelClosed,
    HandshakeMessage,
    IdentityKeyPair,
    ReplayDetected,
    SecureCommError,
)


def _connect(a: SecureCommCore, b: SecureCommCore):
    """Run a handshake between two cores, passing messages as bytes."""
    a_pending = a.begin_handshake(b.peer_id)
    b_pending = b.begin_handshake(a.peer_id)

    a_wire = a_pending.message().to_bytes()
    b_wire = b_pending.message().to_bytes()

    a_chan = a.complete_handshake(a_pending, HandshakeMessage.from_bytes(b_wire), b.identity.verifying_public)
    b_chan = b.complete_handshake(b_pending, HandshakeMessage.from_bytes(a_wire), a.identity.verifying_public)
    return a_chan, b_chan


@pytest.fixture
def nodes():
    a = SecureCommCore()
    b = SecureCommCore()
    yield a, b
    a.shutdown()
    b.shutdown()


class TestSecureCommCore:
    """Tests for the node facade."""

    def test_ping_pong(self, nodes):
        a, b = nodes
        a_chan, b_chan = _connect(a, b)

        wire = a_chan.seal(b"ping", b"seq=1").to_bytes()
        assert b_chan.open(wire, b"seq=1") == b"ping"

        wire = b_chan.seal(b"pong", b"seq=1").to_bytes()
        assert a_chan.open(wire, b"seq=1") == b"pong"

        assert a_chan.key_fingerprint == b_chan.key_fingerprint

    def test_replayed_ping(self, nodes):
        a, b = nodes
        a_chan, b_chan = _connect(a, b)
        wire = a_chan.seal(b"ping", b"seq=1").to_bytes()

        b_chan.open(wire, b"seq=1")
        with pytest.raises(ReplayDetected):
            b_chan.open(wire, b"seq=1")

    def test_channel_registry(self, nodes):
        a, b = nodes
        a_chan, _ = _connect(a, b)

        assert a.channel_for(b.peer_id) is a_chan
        assert a.peers() == [b.peer_id]
        assert a.get_stats()["channels"] == 1
        assert a.get_stats()["pending_handshakes"] == 0

    def test_pending_tracked(self, nodes):
        a, b = nodes
        a.begin_handshake(b.peer_id)
        assert a.get_stats()["pending_handshakes"] == 1

    def test_reconnect_replaces_channel(self, nodes):
        a, b = nodes
        old_a, old_b = _connect(a, b)
        new_a, new_b = _connect(a, b)

        assert old_a.is_closed
        assert old_b.is_closed
        assert a.channel_for(b.peer_id) is new_a
        assert new_a.key_fingerprint != old_a.key_fingerprint

    def test_close_channel(self, nodes):
        a, b = nodes
        a_chan, _ = _connect(a, b)

        assert a.close_channel(b.peer_id)
        assert not a.close_channel(b.peer_id)
        assert a_chan.is_closed
        assert a.channel_for(b.peer_id) is None
        with pytest.raises(ChannelClosed):
            a_chan.seal(b"late")

    def test_closed_channel_dropped(self, nodes):
        a, b = nodes
        a_chan, _ = _connect(a, b)
        a_chan.close()
        assert a.channel_for(b.peer_id) is None
        assert a.peers() == []

    def test_failed_handshake_registers_nothing(self, nodes):
        a, b = nodes
        a_pending = a.begin_handshake(b.peer_id)
        msg = b.begin_handshake(a.peer_id).message()
        msg.signature = bytes(64)

        with pytest.raises(AuthenticationFailed):
            a.complete_handshake(a_pending, msg, b.identity.verifying_public)
        assert a.channel_for(b.peer_id) is None
        assert a_pending.is_finished

    def test_shutdown(self, nodes):
        a, b = nodes
        a_chan, _ = _connect(a, b)
        pending = a.begin_handshake(b.peer_id)

        a.shutdown()

        assert not a.is_running
        assert a.identity.is_destroyed
        assert a_chan.is_closed
        assert pending.is_finished

        # Second call is a no-op
        a.shutdown()

    def test_shutdown_zeroizes_supplied_identity(self):
        seed = bytearray(os.urandom(32))
        node = SecureCommCore(identity=IdentityKeyPair(seed))
        node.shutdown()

        assert node.identity.is_destroyed
        assert seed == bytearray(32)

    def test_abort_handshake(self, nodes):
        a, b = nodes
        pending = a.begin_handshake(b.peer_id)

        a.abort_handshake(pending)

        assert pending.is_finished
        assert a.get_stats()["pending_handshakes"] == 0

    def test_aborted_handshakes_pruned(self, nodes):
        a, b = nodes
        for _ in range(3):
            a.begin_handshake(b.peer_id).abort()
        assert a.get_stats()["pending_handshakes"] == 0

        live = a.begin_handshake(b.peer_id)
        assert a.get_stats()["pending_handshakes"] == 1
        assert a._pending[b.peer_id] == [live]

    def test_complete_from_wire_bytes(self, nodes):
        a, b = nodes
        a_pending = a.begin_handshake(b.peer_id)
        b_pending = b.begin_handshake(a.peer_id)

        a_chan = a.complete_handshake(a_pending, b_pending.message().to_bytes(), b.identity.verifying_public)
        b_chan = b.complete_handshake(b_pending, a_pending.message().to_bytes(), a.identity.verifying_public)

        assert a_chan.key_fingerprint == b_chan.key_fingerprint

    def test_use_after_shutdown(self, nodes):
        a, b = nodes
        a.shutdown()
        with pytest.raises(SecureCommError):
            a.begin_handshake(b.peer_id)

    def test_channel_config_applied(self):
        config = Config(channel=ChannelConfig(rekey_after_messages=2))
        with SecureCommCore(config) as a, SecureCommCore() as b:
            a_chan, _ = _connect(a, b)
            a_chan.seal(b"1")
            a_chan.seal(b"2")
            assert a_chan.needs_rekey

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            SecureCommCore(Config(log_level="LOUD"))
