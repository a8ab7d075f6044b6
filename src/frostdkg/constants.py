"""
Domain parameters of secp256k1 and the hash tags used by the protocol.

The curve operates over a finite field of prime order P, with a base point G
of order Q, specified by its coordinates G_x and G_y.
"""

# The prime modulus of the field
P: int = 2**256 - 2**32 - 977

# The order of the curve
Q: int = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# X-coordinate of the generator point G
G_x: int = 0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798

# Y-coordinate of the generator point G
G_y: int = 0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8

# Domain separation for the keygen proof of possession
CONTEXT: bytes = b"FROST-BIP340/dkg"

# Tagged hash names
TAG_CHALLENGE: str = "BIP0340/challenge"
TAG_BINDING: str = "FROST/binding"
TAG_NONCE: str = "FROST/session-nonce"
TAG_POP: str = "FROST/pop"

# Party indices and counts are hashed as 4 big-endian bytes
MAX_PARTIES: int = 2**32 - 1
