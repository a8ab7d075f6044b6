"""Error types for the FROST keygen and signing rounds."""

from typing import Iterable, Optional


class FrostError(Exception):
    """Base exception for all protocol errors."""
    pass


class InvalidParameters(FrostError):
    """Bad threshold, party count or party index."""

    def __init__(self, message: str, party_index: Optional[int] = None):
        self.party_index = party_index
        super().__init__(message)


class InvalidProof(FrostError):
    """A proof of possession failed, possibly a rogue-key attempt."""

    def __init__(self, party_index: int, details: str = ""):
        self.party_index = party_index
        message = f"Invalid proof of possession from party {party_index}"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)


class IncompleteRound(FrostError):
    """Fewer messages than the round requires."""

    def __init__(self, message: str, missing: Iterable[int] = ()):
        self.missing = tuple(sorted(missing))
        if self.missing:
            message = f"{message} (missing parties: {', '.join(map(str, self.missing))})"
        super().__init__(message)


class InvalidShare(FrostError):
    """A keygen share does not match its sender's commitments."""

    def __init__(self, party_index: int, details: str = ""):
        self.party_index = party_index
        message = f"Invalid keygen share from party {party_index}"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)


class QuorumTooSmall(FrostError):
    """Not enough distinct signers for the threshold."""
    pass


class QuorumMismatch(FrostError):
    """Signing inputs disagree on session, message or quorum."""

    def __init__(self, message: str, party_index: Optional[int] = None):
        self.party_index = party_index
        super().__init__(message)


class NonceAlreadyUsed(FrostError):
    """The session nonce was already spent on different signing inputs."""

    def __init__(self, session: str):
        self.session = session
        super().__init__(
            f"Nonce for session {session!r} was already used to sign different "
            "inputs; start a new session label"
        )


class InvalidCombination(FrostError):
    """Signature shares do not combine into a valid signature."""

    def __init__(self, message: str, party_index: Optional[int] = None):
        self.party_index = party_index
        super().__init__(message)


class ParseError(FrostError):
    """Malformed wire data."""

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"{message} at position {position}"
        super().__init__(message)


class StorageError(FrostError):
    """Reading or writing persisted state failed."""
    pass


class StateNotFound(StorageError):
    """A record the round depends on has not been written."""

    def __init__(self, key: str, hint: str = ""):
        self.key = key
        message = f"No stored state for {key!r}"
        if hint:
            message = f"{message}; {hint}"
        super().__init__(message)


class ConfigurationError(FrostError):
    """Errors related to configuration."""
    pass
