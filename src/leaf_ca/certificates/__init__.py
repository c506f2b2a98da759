"""Leaf certificate issuance.

Builds X.509 leaf certificates from an applicant's RSA public key and has
them signed by an external key custodian.
"""
from __future__ import annotations

from leaf_ca.certificates.custody import (
    CustodianSigner,
    IssuerCertificateBundle,
    KeyCustodian,
    KeyCustodyError,
    LocalKeyCustodian,
    RemoteSigningKey,
    SignatureAlgorithm,
    Signer,
)
from leaf_ca.certificates.extensions import (
    authority_key_identifier_from_ski,
    issuer_subject_key_identifier,
    leaf_extensions,
)
from leaf_ca.certificates.issuer import (
    CertificateIssuer,
    IssuedCertificate,
    IssuerContext,
    validity_window,
)
from leaf_ca.certificates.request import CertificateRequest, PublicKeyMaterial

__all__ = [
    "CertificateIssuer",
    "CertificateRequest",
    "CustodianSigner",
    "IssuedCertificate",
    "IssuerCertificateBundle",
    "IssuerContext",
    "KeyCustodian",
    "KeyCustodyError",
    "LocalKeyCustodian",
    "PublicKeyMaterial",
    "RemoteSigningKey",
    "SignatureAlgorithm",
    "Signer",
    "authority_key_identifier_from_ski",
    "issuer_subject_key_identifier",
    "leaf_extensions",
    "validity_window",
]
