"""
Unit tests for Ed25519 signing and handshake binding.
"""

import os

import pytest

from securecomm.crypto import Authenticator, binding_message


class TestSignVerify:
    """Tests for plain signatures."""

    @pytest.mark.parametrize("message", [b"", b"hello securecomm", os.urandom(1024)])
    def test_valid_signature(self, alice, message):
        signature = Authenticator.sign(alice, message)
        assert Authenticator.verify(alice.verifying_public, message, signature)

    def test_deterministic(self, alice):
        assert Authenticator.sign(alice, b"msg") == Authenticator.sign(alice, b"msg")

    def test_identity_sign_delegates(self, alice):
        assert alice.sign(b"msg") == Authenticator.sign(alice, b"msg")

    def test_other_message_rejected(self, alice):
        signature = Authenticator.sign(alice, b"original")
        assert not Authenticator.verify(alice.verifying_public, b"tampered", signature)

    def test_other_key_rejected(self, alice, bob):
        signature = Authenticator.sign(alice, b"msg")
        assert not Authenticator.verify(bob.verifying_public, b"msg", signature)

    def test_accepts_key_object(self, alice):
        signature = Authenticator.sign(alice, b"msg")
        assert Authenticator.verify(alice.verifying_key, b"msg", signature)

    @pytest.mark.parametrize("public_key", [b"", b"\x00" * 31, b"\x00" * 33, b"\xff" * 32])
    def test_malformed_key_returns_false(self, alice, public_key):
        signature = Authenticator.sign(alice, b"msg")
        assert Authenticator.verify(public_key, b"msg", signature) is False

    @pytest.mark.parametrize("signature", [b"", b"\x00" * 63, b"\x00" * 65, b"\x00" * 64])
    def test_malformed_signature_returns_false(self, alice, signature):
        assert Authenticator.verify(alice.verifying_public, b"msg", signature) is False


class TestBinding:
    """Tests for the handshake binding signature."""

    def test_roundtrip(self, alice, bob):
        eph, nonce = os.urandom(32), os.urandom(16)
        signature = Authenticator.sign_binding(alice, eph, bob.peer_id(), nonce)

        assert Authenticator.verify_binding(alice.verifying_public, eph, bob.peer_id(), nonce, signature)

    def test_bound_to_recipient(self, alice, bob):
        """A binding signed for bob does not verify for anyone else."""
        eph, nonce = os.urandom(32), os.urandom(16)
        signature = Authenticator.sign_binding(alice, eph, bob.peer_id(), nonce)

        assert not Authenticator.verify_binding(alice.verifying_public, eph, alice.peer_id(), nonce, signature)

    def test_bound_to_ephemeral_key(self, alice, bob):
        eph, nonce = os.urandom(32), os.urandom(16)
        signature = Authenticator.sign_binding(alice, eph, bob.peer_id(), nonce)

        assert not Authenticator.verify_binding(alice.verifying_public, os.urandom(32), bob.peer_id(), nonce, signature)

    def test_bad_ephemeral_length_returns_false(self, alice, bob):
        assert not Authenticator.verify_binding(alice.verifying_public, b"\x00" * 5, bob.peer_id(), b"n" * 16, b"s" * 64)

    def test_message_layout(self, bob):
        eph, nonce = b"\x01" * 32, b"\x02" * 16
        message = binding_message(eph, bob.peer_id(), nonce)
        assert message.endswith(eph + bob.peer_id().value + nonce)
