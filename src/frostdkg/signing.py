"""
Threshold signing with a finalized key: nonce generation, signature shares
and combination into a BIP340 signature.

A signing session is named by a caller-chosen label and is bound to exactly
one message. Session nonces are derived from the long-term secret share and
the label, so generating the nonce again for the same label gives the same
nonce. Signing two different messages with one label would let anyone
holding both shares solve for the secret share; the coordinator refuses a
second, different signing request for a label it has already signed under,
but it cannot see what other machines do with the same label.
"""

import logging
from hashlib import sha256
from typing import Dict, List, Optional, Tuple

from . import primitives
from .codec import Batch, filter_messages
from .errors import (
    IncompleteRound,
    InvalidCombination,
    InvalidParameters,
    NonceAlreadyUsed,
    ParseError,
    QuorumMismatch,
    QuorumTooSmall,
)
from .keygen import KeygenCoordinator, group_from_record
from .messages import (
    PublicNonce,
    QuorumNonce,
    SignatureMessage,
    SigningNonceMessage,
    SigningShareMessage,
)
from .point import Point
from .primitives import NonceCommitments
from .store import SessionStore, group_key, session_key

logger = logging.getLogger(__name__)


def verify_signature(signature: str, public_key: str, message: str) -> bool:
    """
    Verify a hex BIP340 signature over a message.

    Parameters:
    signature (str): 64-byte signature in hex.
    public_key (str): x-only (32-byte) or compressed (33-byte) key in hex.
    message (str): The message text; its UTF-8 bytes are what was signed.

    Returns:
    bool: True if the signature is valid for the key and message.

    Raises:
    ParseError: If the signature or key is not well-formed hex of the right
    length.
    """
    try:
        signature_bytes = bytes.fromhex(signature)
        key_bytes = bytes.fromhex(public_key)
        if len(key_bytes) == 33:
            key_bytes = Point.sec_deserialize(key_bytes).xonly_serialize()
    except ValueError as e:
        raise ParseError(f"Malformed signature or public key: {e}") from e
    if len(signature_bytes) != 64:
        raise ParseError("Signature must be 64 bytes")
    if len(key_bytes) != 32:
        raise ParseError("Public key must be 32 or 33 bytes")

    return primitives.verify_signature(signature_bytes, key_bytes, message.encode())


def _decode_nonce(party_index: int, hiding: str, binding: str) -> Tuple[Point, Point]:
    try:
        return Point.from_hex(hiding), Point.from_hex(binding)
    except ValueError as e:
        raise ParseError(f"Invalid public nonce for party {party_index}: {e}") from e


def _decode_quorum(nonces: List[QuorumNonce]) -> NonceCommitments:
    quorum: NonceCommitments = {}
    for nonce in nonces:
        if nonce.party_index in quorum:
            raise QuorumMismatch(
                f"Party {nonce.party_index} appears twice in the quorum",
                party_index=nonce.party_index,
            )
        quorum[nonce.party_index] = _decode_nonce(
            nonce.party_index, nonce.hiding, nonce.binding
        )
    return quorum


def _nonce_pair_from_record(record: Dict) -> Tuple[int, int]:
    return (
        primitives.scalar_from_hex(record["hiding"]),
        primitives.scalar_from_hex(record["binding"]),
    )


def _consumed_from_record(record: Dict) -> Tuple[str, SigningShareMessage]:
    digest = record["digest"]
    if not isinstance(digest, str):
        raise TypeError(f"digest must be a string, got {digest!r}")
    return digest, SigningShareMessage.model_validate(record["share"])


def _inputs_digest(message: bytes, quorum: NonceCommitments) -> str:
    digest = sha256()
    digest.update(len(message).to_bytes(8, "big"))
    digest.update(message)
    for index, (hiding, binding) in sorted(quorum.items()):
        digest.update(index.to_bytes(4, "big"))
        digest.update(hiding.sec_serialize())
        digest.update(binding.sec_serialize())
    return digest.hexdigest()


class SigningCoordinator:
    """
    Drives the signing rounds for one party.

    generate_nonce and sign need this party's index; combine only needs the
    public group record and can run on any machine that finalized the key.
    """

    def __init__(
        self,
        store: SessionStore,
        my_index: Optional[int] = None,
        key_id: str = "default",
    ):
        self.store = store
        self.my_index = my_index
        self.key_id = key_id
        self._keygen = KeygenCoordinator(store, key_id)

    def _require_index(self) -> int:
        if self.my_index is None:
            raise InvalidParameters("This operation needs the signer's party index")
        return self.my_index

    def _nonce_key(self, session: str, index: int) -> str:
        return session_key(self.key_id, session, index, "nonce")

    def _consumed_key(self, session: str, index: int) -> str:
        return session_key(self.key_id, session, index, "consumed")

    def generate_nonce(self, session: str) -> SigningNonceMessage:
        """
        Derive and persist this party's nonce pair for a session.

        Raises:
        InvalidParameters: If no party index was given or the label is empty.
        StateNotFound: If the key has not been finalized for this party.
        """
        index = self._require_index()
        if not session:
            raise InvalidParameters("Session label must not be empty")
        package = self._keygen.load_key_package(index)

        nonce_pair = primitives.derive_nonce_pair(
            package.secret_share, package.public_key, index, session
        )
        hiding, binding = primitives.nonce_commitment_pair(nonce_pair)

        self.store.write_json(
            self._nonce_key(session, index),
            {
                "session": session,
                "hiding": primitives.scalar_to_hex(nonce_pair[0]),
                "binding": primitives.scalar_to_hex(nonce_pair[1]),
            },
        )
        logger.info(f"Party {index} generated its nonce for session {session!r}")
        return SigningNonceMessage(
            party_index=index,
            session=session,
            public_nonce=PublicNonce(hiding=hiding.to_hex(), binding=binding.to_hex()),
        )

    def sign(self, session: str, message: str, nonce_messages: Batch) -> SigningShareMessage:
        """
        Produce this party's signature share for a message.

        Parameters:
        session (str): The session label used for generate_nonce.
        message (str): The message text to sign.
        nonce_messages (Batch): signing_nonce messages of the quorum, this
        party's own included. Messages of other sessions are ignored.

        Returns:
        SigningShareMessage: The share, with the message and the quorum's
        nonce commitments embedded for combine.

        Raises:
        StateNotFound: If the key is not finalized or no nonce exists for the
        session.
        InvalidParameters: If a nonce comes from an index outside 1..n.
        QuorumTooSmall: If the own nonce is missing or fewer than t parties
        sent nonces.
        QuorumMismatch: If the own nonce in the batch differs from the stored
        one.
        NonceAlreadyUsed: If the session nonce already signed other inputs.
        StorageError: If a stored record is corrupt.
        """
        index = self._require_index()
        package = self._keygen.load_key_package(index)
        nonce_pair = self.store.read_record(
            self._nonce_key(session, index),
            _nonce_pair_from_record,
            hint=f"run generate-nonce --session {session} first",
        )

        quorum: NonceCommitments = {}
        for nonce in filter_messages(nonce_messages, SigningNonceMessage, session=session):
            if nonce.party_index > package.n_parties:
                raise InvalidParameters(
                    f"Nonce from party {nonce.party_index}, outside 1..{package.n_parties}",
                    party_index=nonce.party_index,
                )
            quorum[nonce.party_index] = _decode_nonce(
                nonce.party_index, nonce.public_nonce.hiding, nonce.public_nonce.binding
            )

        if index not in quorum:
            raise QuorumTooSmall(
                f"The nonces for session {session!r} do not include party {index}'s own"
            )
        if quorum[index] != primitives.nonce_commitment_pair(nonce_pair):
            raise QuorumMismatch(
                f"The nonce given for party {index} is not the one generated for "
                f"session {session!r}",
                party_index=index,
            )
        if len(quorum) < package.threshold:
            raise QuorumTooSmall(
                f"Need nonces from at least {package.threshold} parties, got {len(quorum)}"
            )

        message_bytes = message.encode()
        digest = _inputs_digest(message_bytes, quorum)
        consumed_key = self._consumed_key(session, index)
        if self.store.exists(consumed_key):
            consumed_digest, consumed_share = self.store.read_record(
                consumed_key, _consumed_from_record
            )
            if consumed_digest != digest:
                raise NonceAlreadyUsed(session)
            logger.info(f"Returning the existing share of party {index} for session {session!r}")
            return consumed_share

        share = primitives.sign_share(
            index,
            package.secret_share,
            package.public_key,
            nonce_pair,
            message_bytes,
            quorum,
        )
        output = SigningShareMessage(
            party_index=index,
            session=session,
            message=message,
            signature_share=primitives.scalar_to_hex(share),
            quorum_nonces=[
                QuorumNonce(party_index=i, hiding=hiding.to_hex(), binding=binding.to_hex())
                for i, (hiding, binding) in sorted(quorum.items())
            ],
        )
        self.store.write_json(consumed_key, {"digest": digest, "share": output.model_dump()})
        logger.info(
            f"Party {index} signed session {session!r} with quorum {sorted(quorum)}"
        )
        return output

    def _load_group(self) -> Tuple[int, int, Point, Tuple[Point, ...]]:
        return self.store.read_record(
            group_key(self.key_id),
            group_from_record,
            hint=f"combine needs a finalized key {self.key_id!r} on this machine",
        )

    def combine(self, signature_share_messages: Batch) -> SignatureMessage:
        """
        Combine the quorum's signature shares into a verified signature.

        Every share is checked against its signer's public verification share
        before the sum is taken, and the final signature is verified against
        the group key before it is returned.

        Raises:
        StateNotFound: If the key is not finalized on this machine.
        IncompleteRound: If there are no shares or a quorum member's share is
        missing.
        QuorumMismatch: If shares disagree on session, message or quorum, or
        come from outside the quorum. Shares signed over different messages
        fail here; a share relabeled to another message fails verification
        with InvalidCombination instead.
        QuorumTooSmall: If the quorum is smaller than the threshold.
        InvalidCombination: If a share or the final signature does not verify.
        StorageError: If the stored group record is corrupt.
        """
        shares = filter_messages(signature_share_messages, SigningShareMessage)
        if not shares:
            raise IncompleteRound("No signature shares to combine")

        threshold, n_parties, public_key, group_commitments = self._load_group()

        reference = shares[0]
        reference_nonces = sorted(reference.quorum_nonces, key=lambda n: n.party_index)
        for share in shares[1:]:
            if share.session != reference.session or share.message != reference.message:
                raise QuorumMismatch(
                    f"Share from party {share.party_index} is for session "
                    f"{share.session!r} / message {share.message!r}, expected "
                    f"{reference.session!r} / {reference.message!r}",
                    party_index=share.party_index,
                )
            if sorted(share.quorum_nonces, key=lambda n: n.party_index) != reference_nonces:
                raise QuorumMismatch(
                    f"Share from party {share.party_index} was computed over a different quorum",
                    party_index=share.party_index,
                )

        quorum = _decode_quorum(reference_nonces)
        for index in quorum:
            if index > n_parties:
                raise InvalidParameters(
                    f"Quorum member {index} is outside 1..{n_parties}", party_index=index
                )
        if len(quorum) < threshold:
            raise QuorumTooSmall(
                f"Quorum has {len(quorum)} parties, the threshold is {threshold}"
            )

        received: Dict[int, int] = {}
        for share in shares:
            if share.party_index not in quorum:
                raise QuorumMismatch(
                    f"Share from party {share.party_index}, which is not in the quorum",
                    party_index=share.party_index,
                )
            try:
                received[share.party_index] = primitives.scalar_from_hex(share.signature_share)
            except ValueError as e:
                raise InvalidCombination(
                    f"Malformed signature share from party {share.party_index}: {e}",
                    party_index=share.party_index,
                ) from e

        missing = set(quorum) - set(received)
        if missing:
            raise IncompleteRound(
                "Need a signature share from every quorum member", missing
            )

        message_bytes = reference.message.encode()
        for index, z in sorted(received.items()):
            verification_share = primitives.derive_public_verification_share(
                group_commitments, index
            )
            if not primitives.verify_signature_share(
                z, index, verification_share, public_key, message_bytes, quorum
            ):
                raise InvalidCombination(
                    f"Signature share from party {index} does not verify",
                    party_index=index,
                )

        signature = primitives.aggregate_signature(received.values(), message_bytes, quorum)
        public_key_xonly = public_key.xonly_serialize()
        if not primitives.verify_signature(signature, public_key_xonly, message_bytes):
            raise InvalidCombination("Combined signature does not verify")

        logger.info(
            f"Combined {len(received)} shares for session {reference.session!r}"
        )
        return SignatureMessage(
            session=reference.session,
            message=reference.message,
            public_key=public_key_xonly.hex(),
            signature=signature.hex(),
            signers=sorted(received),
        )
