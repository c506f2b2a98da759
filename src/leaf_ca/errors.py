"""Typed errors raised by the issuance engine.

Every failure path surfaces one of these to the caller. Storage-level
conditions (not found, version mismatch) are defined alongside the
counter store contract in :mod:`leaf_ca.serials.store`.
"""
from __future__ import annotations


class IssuanceError(Exception):
    """Base class for all errors raised by leaf_ca."""


class MalformedPublicKeyError(IssuanceError, ValueError):
    """Raised when modulus/exponent bytes do not form a usable RSA public key."""


class InvalidSubjectNameError(IssuanceError, ValueError):
    """Raised when a subject name cannot be used as a CommonName."""


class MissingAuthorityKeyIdentifierError(IssuanceError):
    """Raised when the issuer certificate carries no usable Subject Key Identifier."""


class AllocationExhaustedError(IssuanceError):
    """Raised when serial allocation loses the version race too many times."""

    def __init__(self, counter_key: str, attempts: int) -> None:
        self.counter_key = counter_key
        self.attempts = attempts
        super().__init__(
            f"Serial allocation for counter {counter_key!r} gave up after "
            f"{attempts} conflicting writes."
        )


class SerialOverflowError(IssuanceError):
    """Raised when the next serial does not fit the serial length budget."""


class SigningFailedError(IssuanceError):
    """Raised when the signing collaborator fails or refuses to sign."""
