"""
This code is a workshop tool. It's not secure nor stable. IT IS EXTREMELY
DANGEROUS AND RECKLESS TO USE THIS MODULE IN PRODUCTION!

This package runs FROST distributed key generation and threshold BIP340
signing as a sequence of separate rounds, with parties exchanging small JSON
messages by copy/paste between rounds.

Modules:
- point, constants: secp256k1 arithmetic and parameters.
- primitives: commitments, proofs of possession, share checks, nonces and
  signature math.
- codec: the space-separated multi-object JSON wire format.
- store: the persisted per-party state between rounds.
- keygen: the KeygenCoordinator (round1, round2, finalize).
- signing: the SigningCoordinator (generate_nonce, sign, combine) and
  signature verification.
- config, cli: the frostdkg command line.
"""

from .point import Point, G
from .constants import P, Q
from .errors import (
    FrostError,
    InvalidParameters,
    InvalidProof,
    IncompleteRound,
    InvalidShare,
    QuorumTooSmall,
    QuorumMismatch,
    NonceAlreadyUsed,
    InvalidCombination,
    ParseError,
    StorageError,
    StateNotFound,
    ConfigurationError,
)
from .store import SessionStore, MemoryStore, FileStore
from .keygen import KeygenCoordinator, KeyPackage
from .signing import SigningCoordinator, verify_signature
