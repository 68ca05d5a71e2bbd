"""Exceptions raised by :mod:`securecomm.crypto`.

Callers only ever see these types. Backend exceptions from the
cryptography library are translated here so that failures stay
opaque: a bad key and a bad tag look the same from outside.
"""


class SecureCommError(Exception):
    """Base error for cryptographic operations."""


class RandomSourceError(SecureCommError):
    """The CSPRNG could not supply bytes. Fatal for the node."""


class KeyMaterialDestroyed(SecureCommError):
    """A secret was used after being consumed or zeroized."""


class InvalidPublicKey(SecureCommError):
    """Remote key material is malformed or a degenerate curve point."""


class ChannelError(SecureCommError):
    """Base for failures scoped to a single connection."""


class AuthenticationFailed(ChannelError):
    """A signature or AEAD tag did not verify."""


class ReplayDetected(ChannelError):
    """A message with an already consumed nonce was received."""


class NonceExhausted(ChannelError):
    """The send direction ran out of nonces; the channel must be rebuilt."""


class ChannelClosed(ChannelError):
    """The channel was used after teardown."""
