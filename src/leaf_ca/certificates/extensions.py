"""X.509 extension construction for leaf certificates.

The Authority Key Identifier of every leaf is re-derived from the raw
Subject Key Identifier extension of the issuing certificate: the DER
OCTET STRING is decoded to recover the key identifier, which is then
re-encoded as the ``keyIdentifier`` ``[0]`` field of an
AuthorityKeyIdentifier SEQUENCE. For a 20-byte identifier the encoded
extension value is ``30 16 80 14`` followed by the identifier.
"""
from __future__ import annotations

import asn1crypto.core
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, ExtensionOID

from leaf_ca.errors import MissingAuthorityKeyIdentifierError

LEAF_EXTENDED_KEY_USAGES = (
    ExtendedKeyUsageOID.CLIENT_AUTH,
    ExtendedKeyUsageOID.SERVER_AUTH,
)


def issuer_subject_key_identifier(issuer_cert: x509.Certificate) -> bytes:
    """Return the raw DER value of the issuer's Subject Key Identifier extension.

    Raises
    ------
    MissingAuthorityKeyIdentifierError
        If the issuer certificate has no Subject Key Identifier extension.
    """
    try:
        extension = issuer_cert.extensions.get_extension_for_oid(
            ExtensionOID.SUBJECT_KEY_IDENTIFIER
        )
    except x509.ExtensionNotFound as exc:
        raise MissingAuthorityKeyIdentifierError(
            f"Issuer certificate {issuer_cert.subject.rfc4514_string()!r} "
            "has no Subject Key Identifier extension"
        ) from exc
    return extension.value.public_bytes()


def authority_key_identifier_from_ski(raw_ski: bytes) -> x509.AuthorityKeyIdentifier:
    """Derive the leaf's Authority Key Identifier from the issuer's raw SKI bytes.

    Parameters
    ----------
    raw_ski:
        DER-encoded SubjectKeyIdentifier extension value (an OCTET STRING).

    Returns
    -------
    x509.AuthorityKeyIdentifier
        An AKI carrying only the ``keyIdentifier`` field.

    Raises
    ------
    MissingAuthorityKeyIdentifierError
        If *raw_ski* is not a single DER OCTET STRING with a non-empty payload.
    """
    try:
        key_identifier = asn1crypto.core.OctetString.load(raw_ski, strict=True).native
    except (ValueError, TypeError) as exc:
        raise MissingAuthorityKeyIdentifierError(
            f"Issuer Subject Key Identifier is not a DER OCTET STRING: {exc}"
        ) from exc
    if not key_identifier:
        raise MissingAuthorityKeyIdentifierError("Issuer Subject Key Identifier is empty")

    return x509.AuthorityKeyIdentifier(
        key_identifier=key_identifier,
        authority_cert_issuer=None,
        authority_cert_serial_number=None,
    )


def leaf_extensions(
    public_key: rsa.RSAPublicKey,
    authority_key_identifier: x509.AuthorityKeyIdentifier,
) -> list[tuple[x509.ExtensionType, bool]]:
    """Return the five leaf extensions with their criticality, in encoding order.

    The Subject Key Identifier uses RFC 5280 section 4.2.1.2 method 1:
    the SHA-1 hash of the subjectPublicKey BIT STRING.
    """
    key_usage = x509.KeyUsage(
        digital_signature=True,
        key_encipherment=True,
        content_commitment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    # No pathLenConstraint when cA is false.
    basic_constraints = x509.BasicConstraints(ca=False, path_length=None)

    return [
        (key_usage, True),
        (basic_constraints, True),
        (x509.ExtendedKeyUsage(list(LEAF_EXTENDED_KEY_USAGES)), False),
        (x509.SubjectKeyIdentifier.from_public_key(public_key), False),
        (authority_key_identifier, False),
    ]
