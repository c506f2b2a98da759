"""Leaf certificate issuance.

CertificateIssuer turns a CertificateRequest into a signed X.509 leaf
certificate: it reconstructs the applicant's RSA key, derives the Authority
Key Identifier from the issuer's Subject Key Identifier, allocates a serial
number, assembles the to-be-signed structure and hands it to the key
custodian for an RSA PKCS#1 v1.5 / SHA-256 signature.
"""
from __future__ import annotations

import base64
import datetime
import logging
from dataclasses import dataclass
from typing import Callable

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.x509.oid import NameOID

from leaf_ca.certificates.custody import (
    CustodianSigner,
    IssuerCertificateBundle,
    KeyCustodian,
    RemoteSigningKey,
    Signer,
)
from leaf_ca.certificates.extensions import (
    authority_key_identifier_from_ski,
    issuer_subject_key_identifier,
    leaf_extensions,
)
from leaf_ca.certificates.request import CertificateRequest
from leaf_ca.errors import (
    InvalidSubjectNameError,
    SigningFailedError,
)
from leaf_ca.serials.allocator import SerialAllocator, decode_serial

logger = logging.getLogger(__name__)

# X.520 ub-common-name
MAX_COMMON_NAME_LENGTH = 64
CLOCK_SKEW = datetime.timedelta(days=1)


def validity_window(now: datetime.datetime) -> tuple[datetime.datetime, datetime.datetime]:
    """Return ``(not_before, not_after)`` for a certificate issued at *now*.

    ``not_before`` is midnight UTC of the current day minus one day of clock
    skew; ``not_after`` is the same instant one calendar year later
    (February 29 falls back to February 28).
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    today = now.astimezone(datetime.timezone.utc).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    not_before = today - CLOCK_SKEW
    try:
        not_after = not_before.replace(year=not_before.year + 1)
    except ValueError:
        not_after = not_before.replace(year=not_before.year + 1, day=28)
    return not_before, not_after


def _subject_name(subject_name: str) -> x509.Name:
    if not subject_name or not subject_name.strip():
        raise InvalidSubjectNameError("Subject name must not be empty")
    if len(subject_name) > MAX_COMMON_NAME_LENGTH:
        raise InvalidSubjectNameError(
            f"Subject name is {len(subject_name)} characters; "
            f"CommonName allows at most {MAX_COMMON_NAME_LENGTH}"
        )
    # The value is stored as-is in a single CN attribute; RFC 4514 escaping
    # applies only when the name is rendered as a string.
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_name)])


@dataclass
class IssuerContext:
    """Everything needed about the issuing authority for one issuance.

    Parameters
    ----------
    issuer_certificate_der:
        The issuer's certificate in DER form.
    issuer_subject_key_identifier:
        Raw DER value of the issuer's Subject Key Identifier extension.
    signer:
        Remote signing capability for the issuer's key.
    """

    issuer_certificate_der: bytes
    issuer_subject_key_identifier: bytes
    signer: Signer

    @classmethod
    def from_bundle(
        cls, bundle: IssuerCertificateBundle, custodian: KeyCustodian
    ) -> "IssuerContext":
        """Build a context from a custodian's certificate bundle.

        Raises
        ------
        MissingAuthorityKeyIdentifierError
            If the issuer certificate has no Subject Key Identifier.
        """
        issuer_cert = x509.load_der_x509_certificate(bundle.certificate_der)
        return cls(
            issuer_certificate_der=bundle.certificate_der,
            issuer_subject_key_identifier=issuer_subject_key_identifier(issuer_cert),
            signer=CustodianSigner(custodian, bundle.key_handle),
        )

    def load_x509(self) -> x509.Certificate:
        """Parse and return the issuer certificate."""
        return x509.load_der_x509_certificate(self.issuer_certificate_der)


@dataclass(frozen=True)
class IssuedCertificate:
    """A signed leaf certificate. Immutable; owned by the caller.

    Parameters
    ----------
    serial_number:
        Serial bytes as returned by the allocator.
    subject_name:
        RFC 4514 rendering of the subject, e.g. ``CN=device-001``.
    issuer_subject_name:
        RFC 4514 rendering of the issuer name.
    not_before:
        Validity start (UTC).
    not_after:
        Validity end (UTC).
    extensions:
        The certificate's extensions as parsed from the DER encoding.
    signature_algorithm:
        OID of the signature algorithm.
    signature:
        Signature bytes produced by the signer.
    certificate_der:
        The complete DER-encoded certificate.
    """

    serial_number: bytes
    subject_name: str
    issuer_subject_name: str
    not_before: datetime.datetime
    not_after: datetime.datetime
    extensions: x509.Extensions
    signature_algorithm: x509.ObjectIdentifier
    signature: bytes
    certificate_der: bytes

    @classmethod
    def from_x509(cls, cert: x509.Certificate, serial_number: bytes) -> "IssuedCertificate":
        return cls(
            serial_number=serial_number,
            subject_name=cert.subject.rfc4514_string(),
            issuer_subject_name=cert.issuer.rfc4514_string(),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            extensions=cert.extensions,
            signature_algorithm=cert.signature_algorithm_oid,
            signature=cert.signature,
            certificate_der=cert.public_bytes(serialization.Encoding.DER),
        )

    @property
    def serial_number_int(self) -> int:
        return decode_serial(self.serial_number)

    def load_x509(self) -> x509.Certificate:
        """Parse and return the X.509 certificate object."""
        return x509.load_der_x509_certificate(self.certificate_der)

    def to_base64(self) -> str:
        """Return the DER certificate, base64-encoded."""
        return base64.b64encode(self.certificate_der).decode("ascii")

    def to_pem(self) -> bytes:
        """Return the PEM-encoded certificate."""
        return self.load_x509().public_bytes(serialization.Encoding.PEM)


class CertificateIssuer:
    """Issues leaf certificates on behalf of one issuing authority.

    Parameters
    ----------
    custodian:
        Key custodian holding the issuer certificate and private key.
    issuer_id:
        Identifier of the issuer within the custodian.
    allocator:
        Serial number allocator for this issuer.
    clock:
        Returns the current time; defaults to ``datetime.now(timezone.utc)``.
    """

    def __init__(
        self,
        custodian: KeyCustodian,
        issuer_id: str,
        allocator: SerialAllocator,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._custodian = custodian
        self._issuer_id = issuer_id
        self._allocator = allocator
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    @property
    def issuer_id(self) -> str:
        return self._issuer_id

    @property
    def allocator(self) -> SerialAllocator:
        return self._allocator

    def load_issuer_context(self) -> IssuerContext:
        """Fetch the issuer certificate and signing capability from the custodian."""
        bundle = self._custodian.fetch_issuer_certificate(self._issuer_id)
        return IssuerContext.from_bundle(bundle, self._custodian)

    def issue_certificate(
        self,
        request: CertificateRequest,
        issuer: IssuerContext | None = None,
    ) -> IssuedCertificate:
        """Issue a signed leaf certificate for *request*.

        Every successful call consumes exactly one serial number. Input
        errors are detected before a serial is allocated.

        Parameters
        ----------
        request:
            Subject name and applicant public key.
        issuer:
            Issuer context; fetched from the custodian when omitted.

        Returns
        -------
        IssuedCertificate
            The signed certificate.

        Raises
        ------
        MalformedPublicKeyError
            If the public key components are invalid.
        InvalidSubjectNameError
            If the subject name is blank or too long.
        MissingAuthorityKeyIdentifierError
            If the issuer certificate lacks a Subject Key Identifier.
        AllocationExhaustedError
            If no serial could be allocated.
        SigningFailedError
            If the custodian could not sign.
        """
        public_key = request.public_key.to_public_key()
        subject = _subject_name(request.subject_name)

        if issuer is None:
            issuer = self.load_issuer_context()
        issuer_cert = issuer.load_x509()
        issuer_public_key = issuer_cert.public_key()
        if not isinstance(issuer_public_key, RSAPublicKey):
            raise SigningFailedError("Issuer certificate does not carry an RSA key")
        authority_key_identifier = authority_key_identifier_from_ski(
            issuer.issuer_subject_key_identifier
        )

        serial = self._allocator.allocate_serial()
        not_before, not_after = validity_window(self._clock())

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(decode_serial(serial))
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        for extension, critical in leaf_extensions(public_key, authority_key_identifier):
            builder = builder.add_extension(extension, critical=critical)

        signing_key = RemoteSigningKey(issuer.signer, issuer_public_key)
        cert = builder.sign(signing_key, hashes.SHA256(), rsa_padding=asym_padding.PKCS1v15())

        logger.info(
            "Issued certificate for %s with serial %s",
            cert.subject.rfc4514_string(),
            serial.hex(),
        )
        return IssuedCertificate.from_x509(cert, serial)
