"""Issuance request data: the subject name and the applicant's RSA public key."""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric import rsa

from leaf_ca.errors import MalformedPublicKeyError


def _int_to_bytes(value: int) -> bytes:
    return value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")


@dataclass(frozen=True)
class PublicKeyMaterial:
    """Raw RSA public key components as unsigned big-endian bytes.

    Parameters
    ----------
    modulus:
        The RSA modulus *n*.
    exponent:
        The RSA public exponent *e*.
    """

    modulus: bytes
    exponent: bytes

    @classmethod
    def from_base64(cls, modulus: str, exponent: str) -> "PublicKeyMaterial":
        """Decode base64-encoded modulus and exponent strings.

        Raises
        ------
        MalformedPublicKeyError
            If either value is not valid base64.
        """
        try:
            return cls(
                modulus=base64.b64decode(modulus, validate=True),
                exponent=base64.b64decode(exponent, validate=True),
            )
        except (binascii.Error, ValueError) as exc:
            raise MalformedPublicKeyError(f"Public key is not valid base64: {exc}") from exc

    @classmethod
    def from_public_key(cls, public_key: rsa.RSAPublicKey) -> "PublicKeyMaterial":
        """Extract components from an existing RSA public key object."""
        numbers = public_key.public_numbers()
        return cls(modulus=_int_to_bytes(numbers.n), exponent=_int_to_bytes(numbers.e))

    def to_public_key(self) -> rsa.RSAPublicKey:
        """Build an RSA public key object strictly from the stored components.

        The RSA loader also requires an odd exponent with ``3 <= e < n``, so
        keys with an even or too-small exponent are rejected here.

        Raises
        ------
        MalformedPublicKeyError
            If the components are empty, zero, or rejected by the RSA loader.
        """
        if not self.modulus:
            raise MalformedPublicKeyError("RSA modulus is empty")
        if not self.exponent:
            raise MalformedPublicKeyError("RSA exponent is empty")

        n = int.from_bytes(self.modulus, "big")
        e = int.from_bytes(self.exponent, "big")
        if n <= 0 or e <= 0:
            raise MalformedPublicKeyError("RSA modulus and exponent must be positive")

        try:
            return rsa.RSAPublicNumbers(e=e, n=n).public_key()
        except ValueError as exc:
            raise MalformedPublicKeyError(f"Invalid RSA public key: {exc}") from exc


@dataclass(frozen=True)
class CertificateRequest:
    """A single issuance request. Consumed once, never persisted."""

    subject_name: str
    public_key: PublicKeyMaterial
