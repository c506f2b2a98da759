"""leaf-ca — leaf certificate issuance with conflict-free serial allocation.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Quick start
-----------
::

    from leaf_ca import (
        CertificateIssuer, CertificateRequest, PublicKeyMaterial,
        LocalKeyCustodian, SerialAllocator, InMemoryCounterStore,
    )

    custodian = LocalKeyCustodian.generate_root("root")
    issuer = CertificateIssuer(custodian, "root", SerialAllocator(InMemoryCounterStore()))
    issued = issuer.issue_certificate(
        CertificateRequest("device-001", PublicKeyMaterial.from_public_key(device_key))
    )
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------
from leaf_ca.errors import (
    AllocationExhaustedError,
    InvalidSubjectNameError,
    IssuanceError,
    MalformedPublicKeyError,
    MissingAuthorityKeyIdentifierError,
    SerialOverflowError,
    SigningFailedError,
)

# ------------------------------------------------------------------
# Serial allocation
# ------------------------------------------------------------------
from leaf_ca.serials import (
    CounterAlreadyExistsError,
    CounterNotFoundError,
    CounterRecord,
    CounterStore,
    ExponentialBackoff,
    FilesystemCounterStore,
    InMemoryCounterStore,
    SerialAllocator,
    VersionMismatchError,
)

# ------------------------------------------------------------------
# Certificate issuance
# ------------------------------------------------------------------
from leaf_ca.certificates import (
    CertificateIssuer,
    CertificateRequest,
    IssuedCertificate,
    IssuerContext,
    KeyCustodian,
    LocalKeyCustodian,
    PublicKeyMaterial,
    SignatureAlgorithm,
    Signer,
)

__all__ = [
    "__version__",
    # errors
    "AllocationExhaustedError",
    "InvalidSubjectNameError",
    "IssuanceError",
    "MalformedPublicKeyError",
    "MissingAuthorityKeyIdentifierError",
    "SerialOverflowError",
    "SigningFailedError",
    # serials
    "CounterAlreadyExistsError",
    "CounterNotFoundError",
    "CounterRecord",
    "CounterStore",
    "ExponentialBackoff",
    "FilesystemCounterStore",
    "InMemoryCounterStore",
    "SerialAllocator",
    "VersionMismatchError",
    # certificates
    "CertificateIssuer",
    "CertificateRequest",
    "IssuedCertificate",
    "IssuerContext",
    "KeyCustodian",
    "LocalKeyCustodian",
    "PublicKeyMaterial",
    "SignatureAlgorithm",
    "Signer",
]
