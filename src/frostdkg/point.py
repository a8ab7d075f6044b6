"""
This module defines the Point class for secp256k1 points, with the group
arithmetic the protocol needs (addition, negation, scalar multiplication) and
the two encodings that appear on the wire: SEC 1 compressed points for
commitments and nonces, and BIP340 x-only keys for the group public key and
signatures.

Decoding always checks that the result lies on the curve, since every encoded
point handled here was typed or pasted by a human.
"""

from __future__ import annotations
from typing import Optional
from .constants import P, Q, G_x, G_y


def _lift_x(x: int) -> Optional[int]:
    """Return the even y for x, or None if x is not on the curve."""
    if not 0 <= x < P:
        return None
    y_squared = (pow(x, 3, P) + 7) % P
    y = pow(y_squared, (P + 1) // 4, P)
    if pow(y, 2, P) != y_squared:
        return None
    return y if y % 2 == 0 else P - y


class Point:
    """Class representing an elliptic curve point."""

    def __init__(self, x: Optional[int] = None, y: Optional[int] = None):
        """
        Initialize a point. Leaving both coordinates as None gives the point at
        infinity, the identity element of the group.
        """
        self.x = x
        self.y = y

    @classmethod
    def sec_deserialize(cls, data: bytes) -> Point:
        """
        Deserialize a SEC 1 compressed point.

        Parameters:
        data (bytes): 33 bytes, a 0x02/0x03 parity prefix followed by x.

        Returns:
        Point: The decoded point.

        Raises:
        ValueError: If the length or prefix is wrong or x is not on the curve.
        """
        if len(data) != 33:
            raise ValueError("SEC 1 compressed points must be exactly 33 bytes.")
        if data[0] not in (2, 3):
            raise ValueError("Invalid SEC 1 compressed prefix.")

        x = int.from_bytes(data[1:], "big")
        even_y = _lift_x(x)
        if even_y is None:
            raise ValueError("The x-coordinate is not on the curve.")

        y = even_y if data[0] == 2 else P - even_y
        return cls(x, y)

    def sec_serialize(self) -> bytes:
        """
        Serialize the point to its SEC 1 compressed format.

        Raises:
        ValueError: If the point is at infinity.
        """
        if self.x is None or self.y is None:
            raise ValueError("Cannot serialize the point at infinity.")

        prefix = b"\x02" if self.y % 2 == 0 else b"\x03"
        return prefix + self.x.to_bytes(32, "big")

    @classmethod
    def xonly_deserialize(cls, data: bytes) -> Point:
        """
        Deserialize a BIP340 x-only key, choosing the even y.

        Raises:
        ValueError: If the input is not 32 bytes or x is not on the curve.
        """
        if len(data) != 32:
            raise ValueError("x-only points must be exactly 32 bytes.")

        x = int.from_bytes(data, "big")
        y = _lift_x(x)
        if y is None:
            raise ValueError("The x-coordinate is not on the curve.")
        return cls(x, y)

    def xonly_serialize(self) -> bytes:
        """Serialize the x-coordinate as 32 big-endian bytes."""
        if self.x is None:
            raise ValueError("The x-coordinate is not finite.")

        return self.x.to_bytes(32, "big")

    @classmethod
    def from_hex(cls, value: str) -> Point:
        """Decode a hex string holding a compressed point."""
        return cls.sec_deserialize(bytes.fromhex(value))

    def to_hex(self) -> str:
        return self.sec_serialize().hex()

    def is_zero(self) -> bool:
        return self.x is None or self.y is None

    def has_even_y(self) -> bool:
        if self.is_zero():
            raise ValueError("The point at infinity has no y-coordinate.")
        return not self.y & 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return (self.x, self.y) == (other.x, other.y)

    def __hash__(self) -> int:
        return hash((self.x, self.y))

    def __neg__(self) -> Point:
        if self.is_zero():
            return self
        return Point(self.x, -self.y % P)

    def _chord(self, other: Point, slope: int) -> Point:
        # Third intersection of the line through self and other, reflected.
        x = (slope * slope - self.x - other.x) % P
        y = (slope * (self.x - x) - self.y) % P
        return Point(x, y)

    def _dbl(self) -> Point:
        # Points with y = 0 have order 2.
        if self.is_zero() or self.y == 0:
            return Point()
        slope = 3 * self.x * self.x * pow(2 * self.y, -1, P) % P
        return self._chord(self, slope)

    def __add__(self, other: Point) -> Point:
        """
        Group addition.

        Raises:
        ValueError: If other is not a Point.
        """
        if not isinstance(other, Point):
            raise ValueError("Only points can be added to a point.")

        if self.is_zero():
            return other
        if other.is_zero():
            return self
        if self.x == other.x:
            return self._dbl() if self.y == other.y else Point()

        slope = (other.y - self.y) * pow(other.x - self.x, -1, P) % P
        return self._chord(other, slope)

    def __radd__(self, other: object) -> Point:
        # sum() starts from the integer 0
        if other == 0:
            return self
        if not isinstance(other, Point):
            return NotImplemented
        return other + self

    def __sub__(self, other: Point) -> Point:
        if not isinstance(other, Point):
            raise ValueError("Only points can be subtracted from a point.")
        return self + (-other)

    def __rmul__(self, scalar: int) -> Point:
        """
        Scalar multiplication, most significant bit first. The scalar is
        reduced modulo the group order.

        Raises:
        ValueError: If the scalar is not an integer.
        """
        if not isinstance(scalar, int):
            raise ValueError("Points can only be multiplied by integers.")

        scalar %= Q
        result = Point()
        for bit in range(scalar.bit_length() - 1, -1, -1):
            result = result._dbl()
            if (scalar >> bit) & 1:
                result = result + self
        return result

    def __str__(self) -> str:
        return "infinity" if self.is_zero() else f"({self.x:#066x}, {self.y:#066x})"

    def __repr__(self) -> str:
        return f"Point(x={self.x!r}, y={self.y!r})"


G: Point = Point(G_x, G_y)
