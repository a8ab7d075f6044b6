"""
Cryptographic building blocks for FROST keygen and signing over secp256k1.

The coordinators treat this module as a black box: it holds no state and
never touches storage. It provides

- polynomial generation, evaluation and coefficient commitments,
- the keygen proof of possession and its verification,
- share verification against commitments and public verification shares,
- Lagrange and binding coefficients, the group commitment and the BIP340
  challenge,
- deterministic session nonces, signature shares, share verification,
  aggregation and BIP340 verification.

Notation follows the FROST paper: f_i is party i's polynomial, C_i its
commitments, s_i a long-term secret share, (d_i, e_i) a nonce pair with
commitments (D_i, E_i), rho_i the binding value, lambda_i the Lagrange
coefficient, R the group commitment and c the challenge.
"""

from hashlib import sha256
import secrets
from typing import Dict, Iterable, Sequence, Tuple
from .constants import Q, CONTEXT, TAG_BINDING, TAG_CHALLENGE, TAG_NONCE, TAG_POP
from .point import Point, G

NonceCommitments = Dict[int, Tuple[Point, Point]]


def tagged_hash(tag: str, data: bytes) -> bytes:
    """BIP340 tagged hash: sha256(sha256(tag) || sha256(tag) || data)."""
    tag_hash = sha256(tag.encode()).digest()
    return sha256(tag_hash + tag_hash + data).digest()


def scalar_to_hex(value: int) -> str:
    return (value % Q).to_bytes(32, "big").hex()


def scalar_from_hex(value: str) -> int:
    """
    Decode a 32-byte big-endian scalar.

    Raises:
    ValueError: If the input is not 64 hex characters or not below the group
    order.
    """
    data = bytes.fromhex(value)
    if len(data) != 32:
        raise ValueError("Scalars must be exactly 32 bytes.")
    scalar = int.from_bytes(data, "big")
    if scalar >= Q:
        raise ValueError("Scalar is not below the group order.")
    return scalar


def generate_polynomial(threshold: int) -> Tuple[int, ...]:
    """Generate random coefficients for a polynomial of degree threshold - 1."""
    # (a_i_0, . . ., a_i_(t - 1)) ⭠ $ ℤ_q
    return tuple(secrets.randbits(256) % Q for _ in range(threshold))


def evaluate_polynomial(coefficients: Sequence[int], x: int) -> int:
    """
    Evaluate the polynomial at a given point x using Horner's method.

    Parameters:
    coefficients (Sequence[int]): The coefficients, constant term first.
    x (int): The point at which the polynomial is evaluated.

    Returns:
    int: The value of the polynomial at x, reduced modulo Q.
    """
    if not coefficients:
        raise ValueError("Polynomial coefficients must be initialized.")

    y = 0
    for coefficient in reversed(coefficients):
        y = (y * x + coefficient) % Q
    return y


def commit_polynomial(coefficients: Sequence[int]) -> Tuple[Point, ...]:
    # C_i = ⟨𝜙_i_0, ..., 𝜙_i_(t - 1)⟩
    # 𝜙_i_j = g^a_i_j, 0 ≤ j ≤ t - 1
    return tuple(coefficient * G for coefficient in coefficients)


def _proof_challenge(
    index: int,
    threshold: int,
    participants: int,
    commitments: Sequence[Point],
    nonce_commitment: Point,
) -> int:
    # c_i = H(i, 𝚽, t, n, C_i, R_i)
    data = (
        index.to_bytes(4, "big")
        + CONTEXT
        + threshold.to_bytes(4, "big")
        + participants.to_bytes(4, "big")
        + b"".join(commitment.sec_serialize() for commitment in commitments)
        + nonce_commitment.sec_serialize()
    )
    return int.from_bytes(tagged_hash(TAG_POP, data), "big") % Q


def prove_possession(
    index: int,
    threshold: int,
    participants: int,
    coefficients: Sequence[int],
    commitments: Sequence[Point],
) -> Tuple[Point, int]:
    """
    Compute the proof of knowledge of the constant term a_i_0.

    The challenge covers the whole commitment vector and the (t, n)
    parameters as well as the index, so the proof authenticates every public
    field of the party's round 1 message.

    Returns:
    Tuple[Point, int]: The proof σ_i = (R_i, μ_i).
    """
    # k ⭠ ℤ_q
    nonce = secrets.randbits(256) % Q
    # R_i = g^k
    nonce_commitment = nonce * G
    challenge = _proof_challenge(
        index, threshold, participants, commitments, nonce_commitment
    )
    # μ_i = k + a_i_0 * c_i
    s = (nonce + coefficients[0] * challenge) % Q
    return nonce_commitment, s


def verify_possession(
    proof: Tuple[Point, int],
    index: int,
    threshold: int,
    participants: int,
    commitments: Sequence[Point],
) -> bool:
    """
    Verify a party's proof of possession over its commitments.

    Parameters:
    proof (Tuple[Point, int]): Nonce commitment R_l and response μ_l.
    index (int): The index of the party that produced the proof.
    threshold (int): The threshold the party committed to.
    participants (int): The party count the party committed to.
    commitments (Sequence[Point]): The party's coefficient commitments.

    Returns:
    bool: True if the proof is valid, False otherwise.
    """
    if len(proof) != 2 or not commitments:
        return False
    if not all(0 < value < 2**32 for value in (index, threshold, participants)):
        return False

    # R_l, μ_l
    nonce_commitment, s = proof
    if nonce_commitment.is_zero() or any(c.is_zero() for c in commitments):
        return False

    challenge = _proof_challenge(
        index, threshold, participants, commitments, nonce_commitment
    )
    # R_l ≟ g^μ_l * 𝜙_l_0^-c_l
    expected_nonce_commitment = (s * G) + ((Q - challenge) * commitments[0])
    return nonce_commitment == expected_nonce_commitment


def derive_public_verification_share(
    coefficient_commitments: Sequence[Point], index: int
) -> Point:
    """
    Compute g^f(index) from the commitments to the coefficients of f.

    Parameters:
    coefficient_commitments (Sequence[Point]): Commitments, constant term first.
    index (int): The evaluation point, a party index.

    Returns:
    Point: ∏ 𝜙_k^(index^k), 0 ≤ k ≤ t - 1
    """
    expected = Point()
    for k, commitment in enumerate(coefficient_commitments):
        expected += pow(index, k, Q) * commitment
    return expected


def verify_share(share: int, coefficient_commitments: Sequence[Point], index: int) -> bool:
    # g^f_l(i) ≟ ∏ 𝜙_l_k^i^k mod q, 0 ≤ k ≤ t - 1
    return share * G == derive_public_verification_share(coefficient_commitments, index)


def derive_group_commitments(
    commitment_sets: Iterable[Sequence[Point]],
) -> Tuple[Point, ...]:
    """
    Element-wise sum of every party's coefficient commitments. The result
    commits to the joint polynomial, whose constant term is the group public
    key and whose evaluation at i is party i's public verification share.
    """
    return tuple(sum(column, Point()) for column in zip(*commitment_sets))


def derive_public_key(commitment_sets: Iterable[Sequence[Point]]) -> Point:
    # Y = ∏ 𝜙_j_0, 1 ≤ j ≤ n
    return sum((commitments[0] for commitments in commitment_sets), Point())


def lagrange_coefficient(
    participant_indexes: Sequence[int], participant_index: int, x: int = 0
) -> int:
    """
    Calculate the Lagrange coefficient of one participant relative to a set of
    participants.

    Parameters:
    participant_indexes (Sequence[int]): The indices of the whole quorum.
    participant_index (int): The participant the coefficient is for.
    x (int, optional): The evaluation point, 0 for the constant term.

    Returns:
    int: λ_i(x) = ∏ (x - p_j)/(p_i - p_j), j ≠ i

    Raises:
    ValueError: If indices repeat or the participant is not in the quorum.
    """
    if len(participant_indexes) != len(set(participant_indexes)):
        raise ValueError("Participant indexes must be unique.")
    if participant_index not in participant_indexes:
        raise ValueError("Participant index is not part of the quorum.")

    numerator = 1
    denominator = 1
    for index in participant_indexes:
        if index == participant_index:
            continue
        numerator = numerator * (x - index)
        denominator = denominator * (participant_index - index)
    return (numerator * pow(denominator, Q - 2, Q)) % Q


def derive_nonce_pair(
    secret_share: int, public_key: Point, index: int, session: str
) -> Tuple[int, int]:
    """
    Derive the nonce pair for a signing session from the long-term share and
    the session label alone, so re-running nonce generation for the same
    label reproduces the same pair. A label must therefore never be used for
    two different messages.
    """
    session_bytes = session.encode()
    prefix = (
        secret_share.to_bytes(32, "big")
        + public_key.sec_serialize()
        + index.to_bytes(4, "big")
        + len(session_bytes).to_bytes(8, "big")
        + session_bytes
    )
    # (d_i, e_i) = H(s_i, Y, i, session, 0), H(s_i, Y, i, session, 1)
    nonces = tuple(
        int.from_bytes(tagged_hash(TAG_NONCE, prefix + bytes([j])), "big") % Q
        for j in range(2)
    )
    if 0 in nonces:
        raise ValueError("Derived a zero nonce.")
    return nonces[0], nonces[1]


def nonce_commitment_pair(nonce_pair: Tuple[int, int]) -> Tuple[Point, Point]:
    # (D_i, E_i) = (g^d_i, g^e_i)
    return nonce_pair[0] * G, nonce_pair[1] * G


def binding_value(index: int, message: bytes, nonce_commitments: NonceCommitments) -> int:
    """
    Compute the binding value of one signer. It depends on the message and
    on every nonce commitment of the quorum, so no signer can adapt its nonce
    to the others after seeing them.

    Raises:
    ValueError: If the index is not part of the quorum.
    """
    if index not in nonce_commitments:
        raise ValueError(f"Index {index} has no nonce commitment in the quorum.")

    # B
    encoded_commitments = b"".join(
        idx.to_bytes(4, "big") + hiding.sec_serialize() + binding.sec_serialize()
        for idx, (hiding, binding) in sorted(nonce_commitments.items())
    )
    # p_l = H_1(l, m, B), l ∈ S
    data = (
        index.to_bytes(4, "big")
        + len(message).to_bytes(8, "big")
        + message
        + encoded_commitments
    )
    return int.from_bytes(tagged_hash(TAG_BINDING, data), "big") % Q


def group_commitment(message: bytes, nonce_commitments: NonceCommitments) -> Point:
    """Aggregate the quorum's nonce commitments into R."""
    # R = ∏ D_l * (E_l)^p_l, l ∈ S
    commitment = Point()
    for index, (hiding, binding) in sorted(nonce_commitments.items()):
        rho = binding_value(index, message, nonce_commitments)
        commitment += hiding + (rho * binding)
    return commitment


def challenge_hash(nonce_commitment: Point, public_key: Point, message: bytes) -> int:
    # c = H_2(R, Y, m)
    data = nonce_commitment.xonly_serialize() + public_key.xonly_serialize() + message
    return int.from_bytes(tagged_hash(TAG_CHALLENGE, data), "big") % Q


def sign_share(
    index: int,
    secret_share: int,
    public_key: Point,
    nonce_pair: Tuple[int, int],
    message: bytes,
    nonce_commitments: NonceCommitments,
) -> int:
    """
    Generate a signature share for one signer of the quorum.

    Parameters:
    index (int): The signer's index.
    secret_share (int): The signer's long-term secret share s_i.
    public_key (Point): The group public key Y.
    nonce_pair (Tuple[int, int]): The signer's secret nonces (d_i, e_i).
    message (bytes): The message being signed.
    nonce_commitments (NonceCommitments): (D_l, E_l) for every l in the quorum.

    Returns:
    int: The signature share z_i.

    Raises:
    ValueError: If the group commitment or the public key is the point at
    infinity.
    """
    if public_key.is_zero():
        raise ValueError("Public key is the point at infinity.")

    # R
    commitment = group_commitment(message, nonce_commitments)
    if commitment.is_zero():
        raise ValueError("Group commitment is the point at infinity.")

    # c = H_2(R, Y, m)
    challenge = challenge_hash(commitment, public_key, message)

    # d_i, e_i
    first_nonce, second_nonce = nonce_pair

    # Negate d_i and e_i if R is odd
    if not commitment.has_even_y():
        first_nonce = Q - first_nonce
        second_nonce = Q - second_nonce

    # p_i = H_1(i, m, B), i ∈ S
    rho = binding_value(index, message, nonce_commitments)
    # λ_i
    lagrange = lagrange_coefficient(tuple(nonce_commitments), index)

    # Negate s_i if Y is odd
    if not public_key.has_even_y():
        secret_share = Q - secret_share

    # z_i = d_i + (e_i * p_i) + λ_i * s_i * c
    return (
        first_nonce + (second_nonce * rho) + lagrange * secret_share * challenge
    ) % Q


def verify_signature_share(
    share: int,
    index: int,
    verification_share: Point,
    public_key: Point,
    message: bytes,
    nonce_commitments: NonceCommitments,
) -> bool:
    """Check z_i against the signer's public verification share Y_i."""
    commitment = group_commitment(message, nonce_commitments)
    if commitment.is_zero() or public_key.is_zero():
        return False

    challenge = challenge_hash(commitment, public_key, message)
    hiding, binding = nonce_commitments[index]
    rho = binding_value(index, message, nonce_commitments)
    lagrange = lagrange_coefficient(tuple(nonce_commitments), index)

    # R_i = D_i * E_i^p_i
    signer_commitment = hiding + (rho * binding)
    if not commitment.has_even_y():
        signer_commitment = -signer_commitment
    if not public_key.has_even_y():
        verification_share = -verification_share

    # g^z_i ≟ R_i * Y_i^(c * λ_i)
    return share * G == signer_commitment + ((challenge * lagrange) * verification_share)


def aggregate_signature(
    shares: Iterable[int], message: bytes, nonce_commitments: NonceCommitments
) -> bytes:
    """Combine signature shares into a 64-byte BIP340 signature σ = (R, z)."""
    commitment = group_commitment(message, nonce_commitments)
    z = sum(shares) % Q
    return commitment.xonly_serialize() + z.to_bytes(32, "big")


def verify_signature(signature: bytes, public_key: bytes, message: bytes) -> bool:
    """
    Verify a BIP340 signature.

    Parameters:
    signature (bytes): 64 bytes, R.x || z.
    public_key (bytes): The 32-byte x-only public key.
    message (bytes): The signed message.

    Returns:
    bool: True if the signature is valid.

    Raises:
    ValueError: If the signature or key have the wrong length.
    """
    if len(signature) != 64:
        raise ValueError("Signatures must be exactly 64 bytes.")

    try:
        key = Point.xonly_deserialize(public_key)
        nonce_commitment = Point.xonly_deserialize(signature[0:32])
    except ValueError:
        if len(public_key) != 32:
            raise
        return False

    z = int.from_bytes(signature[32:64], "big")
    if z >= Q:
        return False

    challenge = challenge_hash(nonce_commitment, key, message)
    # R ≟ g^z * Y^-c
    expected = (z * G) + ((Q - challenge) * key)
    if expected.is_zero() or not expected.has_even_y():
        return False
    return expected.x == nonce_commitment.x
