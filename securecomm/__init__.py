"""
SecureComm - Cryptographic core of a privacy-first P2P communication node

Provides node identities, authenticated ephemeral key agreement and
secure channels for the transport layer to carry.

This package contains:
- crypto/    : Keys, key agreement, signatures, secure channel, handshake
- config.py  : Configuration loading and logging setup
- core.py    : Per-node facade tracking channels by peer

Transport, peer discovery and process lifecycle are external.
"""

__version__ = "0.1.0"
__author__ = "SecureComm Project"

# Core constants
PROTOCOL_VERSION = 1
PEER_ID_LENGTH = 32  # bytes
SESSION_KEY_LENGTH = 32  # bytes
NONCE_LENGTH = 12  # bytes
