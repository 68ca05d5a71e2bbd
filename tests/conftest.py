"""Shared fixtures."""

import os

import pytest

from securecomm.crypto import (
    Direction,
    IdentityKeyPair,
    SecureChannel,
    SessionKey,
    begin_handshake,
    complete_handshake,
)


@pytest.fixture
def alice():
    identity = IdentityKeyPair.generate()
    yield identity
    identity.destroy()


@pytest.fixture
def bob():
    identity = IdentityKeyPair.generate()
    yield identity
    identity.destroy()


@pytest.fixture
def key_bytes():
    return os.urandom(32)


@pytest.fixture
def channel_pair(key_bytes):
    """Two ends of a channel sharing one key, without a handshake."""
    low = SecureChannel(SessionKey(key_bytes), Direction.LOW)
    high = SecureChannel(SessionKey(key_bytes), Direction.HIGH)
    yield low, high
    low.close()
    high.close()


@pytest.fixture
def handshaken(alice, bob):
    """Channels for alice and bob from a full handshake."""
    a_pending = begin_handshake(alice, bob.peer_id())
    b_pending = begin_handshake(bob, alice.peer_id())

    a_chan = complete_handshake(a_pending, b_pending.message(), bob.verifying_public)
    b_chan = complete_handshake(b_pending, a_pending.message(), alice.verifying_public)
    yield a_chan, b_chan
    a_chan.close()
    b_chan.close()
