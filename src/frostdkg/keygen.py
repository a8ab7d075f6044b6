"""
Distributed key generation, one method per round.

Each party runs the rounds in its own process and pastes the outputs to the
others in between:

1. round1 commits to a fresh polynomial and proves knowledge of its
   constant term.
2. round2 checks everybody's commitments and proofs, then evaluates the
   local polynomial at every party index.
3. finalize checks every share addressed to this party against its sender's
   commitments and sums them into the long-term secret share.

State per (key, party) moves Uninitialized -> Round1Done -> Round2Done ->
Finalized, and lives entirely in the injected SessionStore.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from . import primitives
from .constants import MAX_PARTIES, Q
from .codec import Batch, filter_messages
from .errors import (
    IncompleteRound,
    InvalidParameters,
    InvalidProof,
    InvalidShare,
)
from .messages import (
    KeygenResultMessage,
    KeygenRound1Message,
    KeygenRound2Message,
    ProofOfPossession,
    ShareData,
)
from .point import Point, G
from .store import SessionStore, group_key, keygen_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPackage:
    """A party's finalized key material."""

    party_index: int
    threshold: int
    n_parties: int
    secret_share: int
    public_key: Point
    group_commitments: Tuple[Point, ...]

    @property
    def verification_share(self) -> Point:
        return self.secret_share * G

    def public_key_hex(self) -> str:
        return self.public_key.xonly_serialize().hex()

    def public_message(self) -> KeygenResultMessage:
        """The public part, safe to paste for comparison with other parties."""
        return KeygenResultMessage(
            party_index=self.party_index,
            threshold=self.threshold,
            n_parties=self.n_parties,
            public_key=self.public_key_hex(),
            verification_share=self.verification_share.to_hex(),
        )

    def to_record(self) -> Dict:
        return {
            "party_index": self.party_index,
            "threshold": self.threshold,
            "n_parties": self.n_parties,
            "secret_share": primitives.scalar_to_hex(self.secret_share),
            "public_key": self.public_key.to_hex(),
            "group_commitments": [c.to_hex() for c in self.group_commitments],
        }

    @classmethod
    def from_record(cls, record: Dict) -> "KeyPackage":
        return cls(
            party_index=_int_field(record, "party_index"),
            threshold=_int_field(record, "threshold"),
            n_parties=_int_field(record, "n_parties"),
            secret_share=primitives.scalar_from_hex(record["secret_share"]),
            public_key=Point.from_hex(record["public_key"]),
            group_commitments=tuple(
                Point.from_hex(c) for c in record["group_commitments"]
            ),
        )


def _int_field(record: Dict, name: str) -> int:
    value = record[name]
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {value!r}")
    return value


def _polynomial_from_record(record: Dict) -> Dict:
    threshold = _int_field(record, "threshold")
    coefficients = tuple(primitives.scalar_from_hex(a) for a in record["coefficients"])
    commitments = [Point.from_hex(c).to_hex() for c in record["commitments"]]
    if len(coefficients) != threshold or len(commitments) != threshold:
        raise ValueError(f"expected {threshold} coefficients and commitments")
    return {
        "threshold": threshold,
        "n_parties": _int_field(record, "n_parties"),
        "coefficients": coefficients,
        "commitments": commitments,
        "proof": ProofOfPossession.model_validate(record["proof"]),
    }


def _commitments_from_record(record: Dict) -> Tuple[int, int, Dict[int, Tuple[Point, ...]]]:
    commitment_sets = {
        int(index): tuple(Point.from_hex(c) for c in commitments)
        for index, commitments in record["commitments"].items()
    }
    return _int_field(record, "threshold"), _int_field(record, "n_parties"), commitment_sets


def group_from_record(record: Dict) -> Tuple[int, int, Point, Tuple[Point, ...]]:
    """Decode the shared group record: (t, n, public key, group commitments)."""
    return (
        _int_field(record, "threshold"),
        _int_field(record, "n_parties"),
        Point.from_hex(record["public_key"]),
        tuple(Point.from_hex(c) for c in record["group_commitments"]),
    )


def _decode_commitments(message: KeygenRound1Message) -> Tuple[Tuple[Point, ...], Tuple[Point, int]]:
    try:
        commitments = tuple(Point.from_hex(c) for c in message.commitments)
        proof = (
            Point.from_hex(message.proof_of_possession.r),
            primitives.scalar_from_hex(message.proof_of_possession.s),
        )
    except ValueError as e:
        raise InvalidProof(message.party_index, f"undecodable commitment ({e})") from e
    return commitments, proof


class KeygenCoordinator:
    """Drives the three keygen rounds for one party against a store."""

    def __init__(self, store: SessionStore, key_id: str = "default"):
        self.store = store
        self.key_id = key_id

    def _polynomial_key(self, my_index: int) -> str:
        return keygen_key(self.key_id, my_index, "polynomial")

    def _commitments_key(self, my_index: int) -> str:
        return keygen_key(self.key_id, my_index, "commitments")

    def _share_key(self, my_index: int) -> str:
        return keygen_key(self.key_id, my_index, "secret_share")

    def load_key_package(self, my_index: int) -> KeyPackage:
        """
        Load finalized key material.

        Raises:
        StateNotFound: If keygen has not been finalized for this party.
        StorageError: If the stored key package is corrupt.
        """
        return self.store.read_record(
            self._share_key(my_index),
            KeyPackage.from_record,
            hint=f"run keygen-finalize for party {my_index} first",
        )

    def round1(self, threshold: int, n_parties: int, my_index: int) -> KeygenRound1Message:
        """
        Commit to a fresh polynomial of degree threshold - 1.

        Re-running with the same parameters before finalize returns the stored
        commitment unchanged, so a lost output can be recovered.

        Raises:
        InvalidParameters: If 1 ≤ threshold ≤ n_parties or
        1 ≤ my_index ≤ n_parties does not hold, if round 1 already ran with
        other parameters, or if the key is already finalized.
        """
        if not all(isinstance(arg, int) for arg in (threshold, n_parties, my_index)):
            raise InvalidParameters("threshold, n_parties and my_index must be integers")
        if n_parties > MAX_PARTIES:
            raise InvalidParameters(f"At most {MAX_PARTIES} parties are supported, got {n_parties}")
        if not 1 <= threshold <= n_parties:
            raise InvalidParameters(
                f"Threshold ({threshold}) must be between 1 and the number of parties ({n_parties})"
            )
        if not 1 <= my_index <= n_parties:
            raise InvalidParameters(
                f"Party index must be between 1 and {n_parties}, got {my_index}",
                party_index=my_index,
            )
        if self.store.exists(self._share_key(my_index)):
            raise InvalidParameters(
                f"Key {self.key_id!r} is already finalized for party {my_index}; "
                "use a new key id",
                party_index=my_index,
            )

        key = self._polynomial_key(my_index)
        if self.store.exists(key):
            polynomial = self.store.read_record(key, _polynomial_from_record)
            if (polynomial["threshold"], polynomial["n_parties"]) != (threshold, n_parties):
                raise InvalidParameters(
                    f"Round 1 already ran for key {self.key_id!r} with threshold "
                    f"{polynomial['threshold']} of {polynomial['n_parties']}",
                    party_index=my_index,
                )
            logger.info(f"Reusing stored round 1 state for party {my_index}")
            return self._round1_message(my_index, polynomial)

        coefficients = primitives.generate_polynomial(threshold)
        commitments = primitives.commit_polynomial(coefficients)
        nonce_commitment, s = primitives.prove_possession(
            my_index, threshold, n_parties, coefficients, commitments
        )

        record = {
            "party_index": my_index,
            "threshold": threshold,
            "n_parties": n_parties,
            "coefficients": [primitives.scalar_to_hex(a) for a in coefficients],
            "commitments": [c.to_hex() for c in commitments],
            "proof": {"r": nonce_commitment.to_hex(), "s": primitives.scalar_to_hex(s)},
        }
        self.store.write_json(key, record)
        logger.info(
            f"Party {my_index} committed to a degree {threshold - 1} polynomial "
            f"for a {threshold}-of-{n_parties} key"
        )
        return self._round1_message(my_index, _polynomial_from_record(record))

    @staticmethod
    def _round1_message(my_index: int, polynomial: Dict) -> KeygenRound1Message:
        return KeygenRound1Message(
            party_index=my_index,
            threshold=polynomial["threshold"],
            n_parties=polynomial["n_parties"],
            commitments=polynomial["commitments"],
            proof_of_possession=polynomial["proof"],
        )

    def round2(self, my_index: int, round1_messages: Batch) -> KeygenRound2Message:
        """
        Verify every party's commitments and produce one share per party.

        The share for this party's own index is produced like every other
        one, by evaluating the local polynomial at that index.

        Parameters:
        my_index (int): This party's index.
        round1_messages (Batch): The round 1 outputs of all parties.

        Returns:
        KeygenRound2Message: Shares f_i(j) for every j in 1..n.

        Raises:
        StateNotFound: If round 1 has not run for my_index.
        ParseError: If the batch is malformed.
        InvalidProof: If a proof of possession does not verify.
        InvalidParameters: If a party used other (t, n) parameters or an index
        out of range, or the own commitment differs from local state.
        IncompleteRound: If some party's commitment is missing.
        StorageError: If the stored polynomial is corrupt.
        """
        polynomial = self.store.read_record(
            self._polynomial_key(my_index),
            _polynomial_from_record,
            hint=f"run keygen-round1 for party {my_index} first",
        )
        threshold = polynomial["threshold"]
        n_parties = polynomial["n_parties"]

        messages = filter_messages(round1_messages, KeygenRound1Message)

        commitment_sets: Dict[int, Tuple[Point, ...]] = {}
        for message in messages:
            index = message.party_index
            commitments, proof = _decode_commitments(message)
            if not primitives.verify_possession(
                proof, index, message.threshold, message.n_parties, commitments
            ):
                raise InvalidProof(index)

            if (message.threshold, message.n_parties) != (threshold, n_parties):
                raise InvalidParameters(
                    f"Party {index} committed to a {message.threshold}-of-"
                    f"{message.n_parties} key, expected {threshold}-of-{n_parties}",
                    party_index=index,
                )
            if len(commitments) != threshold:
                raise InvalidParameters(
                    f"Party {index} sent {len(commitments)} commitments, expected {threshold}",
                    party_index=index,
                )
            if index > n_parties:
                raise InvalidParameters(
                    f"Party index {index} is outside 1..{n_parties}", party_index=index
                )
            if index == my_index and list(message.commitments) != polynomial["commitments"]:
                raise InvalidParameters(
                    f"Round 1 message for party {my_index} does not match local state; "
                    "was round 1 re-run elsewhere?",
                    party_index=index,
                )
            commitment_sets[index] = commitments

        missing = set(range(1, n_parties + 1)) - set(commitment_sets)
        if missing:
            raise IncompleteRound(
                f"Need round 1 commitments from all {n_parties} parties, "
                f"got {len(commitment_sets)}",
                missing,
            )
        logger.info(f"Verified {len(commitment_sets)} proofs of possession")

        self.store.write_json(
            self._commitments_key(my_index),
            {
                "threshold": threshold,
                "n_parties": n_parties,
                "commitments": {
                    str(index): [c.to_hex() for c in commitments]
                    for index, commitments in sorted(commitment_sets.items())
                },
            },
        )

        coefficients = polynomial["coefficients"]
        # (i, f_i(i)), (l, f_i(l))
        shares = [
            ShareData(
                to_index=index,
                share=primitives.scalar_to_hex(
                    primitives.evaluate_polynomial(coefficients, index)
                ),
            )
            for index in range(1, n_parties + 1)
        ]
        logger.info(f"Party {my_index} produced {len(shares)} keygen shares")
        return KeygenRound2Message(party_index=my_index, shares=shares)

    def finalize(self, my_index: int, round2_messages: Batch) -> KeyPackage:
        """
        Validate the shares sent to this party and derive the key.

        Returns:
        KeyPackage: The secret share, group public key and group commitments.

        Raises:
        StateNotFound: If round 2 has not run for my_index.
        ParseError: If the batch is malformed.
        InvalidParameters: If a share comes from an unknown party.
        IncompleteRound: If a party's share for my_index is missing.
        InvalidShare: If a share does not match its sender's commitments.
        StorageError: If the stored commitments are corrupt.
        """
        if self.store.exists(self._share_key(my_index)):
            logger.info(f"Key {self.key_id!r} already finalized for party {my_index}")
            return self.load_key_package(my_index)

        threshold, n_parties, commitment_sets = self.store.read_record(
            self._commitments_key(my_index),
            _commitments_from_record,
            hint=f"run keygen-round2 for party {my_index} first",
        )

        received: Dict[int, str] = {}
        for message in filter_messages(round2_messages, KeygenRound2Message):
            sender = message.party_index
            if sender not in commitment_sets:
                raise InvalidParameters(
                    f"Share from party {sender}, which has no round 1 commitment",
                    party_index=sender,
                )
            for share in message.shares:
                if share.to_index == my_index:
                    received[sender] = share.share
                    break

        missing = set(commitment_sets) - set(received)
        if missing:
            raise IncompleteRound(
                f"Need a share for party {my_index} from all {n_parties} parties, "
                f"got {len(received)}",
                missing,
            )

        # s_i = ∑ f_l(i), 1 ≤ l ≤ n
        secret_share = 0
        for sender, share_hex in sorted(received.items()):
            try:
                share = primitives.scalar_from_hex(share_hex)
            except ValueError as e:
                raise InvalidShare(sender, str(e)) from e
            if not primitives.verify_share(share, commitment_sets[sender], my_index):
                raise InvalidShare(sender, "does not match the sender's commitments")
            secret_share = (secret_share + share) % Q

        ordered_sets = [commitment_sets[index] for index in sorted(commitment_sets)]
        public_key = primitives.derive_public_key(ordered_sets)
        group_commitments = primitives.derive_group_commitments(ordered_sets)
        if public_key.is_zero():
            raise InvalidParameters("Group public key is the point at infinity")

        package = KeyPackage(
            party_index=my_index,
            threshold=threshold,
            n_parties=n_parties,
            secret_share=secret_share,
            public_key=public_key,
            group_commitments=group_commitments,
        )

        self.store.write_json(self._share_key(my_index), package.to_record())
        self.store.write_json(
            group_key(self.key_id),
            {
                "threshold": threshold,
                "n_parties": n_parties,
                "public_key": public_key.to_hex(),
                "group_commitments": [c.to_hex() for c in group_commitments],
            },
        )
        self.store.delete(self._polynomial_key(my_index))

        logger.info(
            f"Party {my_index} finalized key {self.key_id!r}: "
            f"public key {package.public_key_hex()}"
        )
        return package
