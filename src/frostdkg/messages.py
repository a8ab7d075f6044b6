"""Pydantic models for the JSON messages exchanged between parties."""

from typing import List, Literal

from pydantic import BaseModel, Field


class ProofOfPossession(BaseModel):
    """Schnorr proof of knowledge of a party's constant term."""
    r: str  # compressed nonce commitment
    s: str  # response scalar


class KeygenRound1Message(BaseModel):
    """Public commitment set a party broadcasts after round 1."""
    type: Literal["keygen_round1"] = "keygen_round1"
    party_index: int = Field(ge=1)
    threshold: int = Field(ge=1)
    n_parties: int = Field(ge=1)
    commitments: List[str]
    proof_of_possession: ProofOfPossession


class ShareData(BaseModel):
    """One keygen share, f_i(to_index)."""
    to_index: int = Field(ge=1)
    share: str


class KeygenRound2Message(BaseModel):
    """Keygen shares from one party, one entry per recipient."""
    type: Literal["keygen_round2"] = "keygen_round2"
    party_index: int = Field(ge=1)
    shares: List[ShareData]


class KeygenResultMessage(BaseModel):
    """Public outcome of finalize, compared across parties."""
    type: Literal["keygen_result"] = "keygen_result"
    party_index: int = Field(ge=1)
    threshold: int
    n_parties: int
    public_key: str  # x-only
    verification_share: str


class PublicNonce(BaseModel):
    hiding: str
    binding: str


class SigningNonceMessage(BaseModel):
    """Public nonce commitment for one signing session."""
    type: Literal["signing_nonce"] = "signing_nonce"
    party_index: int = Field(ge=1)
    session: str
    public_nonce: PublicNonce


class QuorumNonce(BaseModel):
    party_index: int = Field(ge=1)
    hiding: str
    binding: str


class SigningShareMessage(BaseModel):
    """A signature share, carrying everything combine needs."""
    type: Literal["signing_share"] = "signing_share"
    party_index: int = Field(ge=1)
    session: str
    message: str
    signature_share: str
    quorum_nonces: List[QuorumNonce]


class SignatureMessage(BaseModel):
    """The final BIP340 signature."""
    type: Literal["signature"] = "signature"
    session: str
    message: str
    public_key: str  # x-only
    signature: str
    signers: List[int]
