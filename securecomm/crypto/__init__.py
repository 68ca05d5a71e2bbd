"""
SecureComm Cryptographic Module

Provides all cryptographic operations for SecureComm:
- Node identity (Ed25519) and peer identifiers (BLAKE2b)
- Ephemeral key agreement (X25519)
- Session key derivation (HKDF-SHA256 over the handshake transcript)
- Authenticated encryption (ChaCha20-Poly1305)
- Handshake signing and verification (Ed25519)

All implementations use the cryptography library (OpenSSL backend).
"""

from .errors import (
    SecureCommError,
    RandomSourceError,
    KeyMaterialDestroyed,
    InvalidPublicKey,
    ChannelError,
    AuthenticationFailed,
    ReplayDetected,
    NonceExhausted,
    ChannelClosed,
)

from .keys import (
    PeerId,
    IdentityKeyPair,
    EphemeralKeyPair,
    derive_peer_id,
)

from .agreement import (
    KeyAgreement,
    SharedSecret,
    SessionKey,
    HandshakeParty,
    build_transcript,
)

from .auth import (
    Authenticator,
    binding_message,
)

from .channel import (
    SecureChannel,
    SealedMessage,
    NonceCounter,
    Direction,
    ChannelState,
)

from .handshake import (
    HandshakeMessage,
    PendingHandshake,
    begin_handshake,
    complete_handshake,
)

__all__ = [
    # Errors
    'SecureCommError',
    'RandomSourceError',
    'KeyMaterialDestroyed',
    'InvalidPublicKey',
    'ChannelError',
    'AuthenticationFailed',
    'ReplayDetected',
    'NonceExhausted',
    'ChannelClosed',
    # Keys
    'PeerId',
    'IdentityKeyPair',
    'EphemeralKeyPair',
    'derive_peer_id',
    # Agreement
    'KeyAgreement',
    'SharedSecret',
    'SessionKey',
    'HandshakeParty',
    'build_transcript',
    # Signatures
    'Authenticator',
    'binding_message',
    # Channel
    'SecureChannel',
    'SealedMessage',
    'NonceCounter',
    'Direction',
    'ChannelState',
    # Handshake
    'HandshakeMessage',
    'PendingHandshake',
    'begin_handshake',
    'complete_handshake',
]
