"""Key custody — the collaborator that owns the issuer's private key.

The issuance engine never holds issuer key material. It fetches the issuer
certificate and a key handle from a KeyCustodian and asks it to sign the
to-be-signed bytes. RemoteSigningKey adapts that capability to the
``RSAPrivateKey`` interface so the ``cryptography`` certificate builder can
drive the signature without ever seeing the key.

LocalKeyCustodian keeps a root key in process memory. It is intended for
development and tests; production deployments should implement
KeyCustodian on top of an HSM or a cloud key vault.
"""
from __future__ import annotations

import datetime
import enum
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric import utils as asym_utils
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from leaf_ca.errors import SigningFailedError


class KeyCustodyError(Exception):
    """Raised by a custodian for unknown issuers or key handles."""


class SignatureAlgorithm(str, enum.Enum):
    """Signature algorithms a custodian may be asked to perform."""

    RS256 = "RS256"  # RSASSA-PKCS1-v1_5 with SHA-256


@dataclass(frozen=True)
class IssuerCertificateBundle:
    """The issuer certificate and an opaque handle to its private key."""

    certificate_der: bytes
    key_handle: str


class KeyCustodian(ABC):
    """Abstract key custodian: exposes certificates and signatures, never keys."""

    @abstractmethod
    def fetch_issuer_certificate(self, issuer_id: str) -> IssuerCertificateBundle:
        """Return the DER certificate and key handle for *issuer_id*."""

    @abstractmethod
    def sign(self, key_handle: str, data: bytes, algorithm: SignatureAlgorithm) -> bytes:
        """Sign *data* with the key behind *key_handle*."""


class Signer(ABC):
    """A bound signing capability for one issuer key."""

    @abstractmethod
    def sign(self, data: bytes, algorithm: SignatureAlgorithm) -> bytes:
        """Return the signature over *data*."""


class CustodianSigner(Signer):
    """Signer that forwards to a KeyCustodian for a fixed key handle."""

    def __init__(self, custodian: KeyCustodian, key_handle: str) -> None:
        self._custodian = custodian
        self._key_handle = key_handle

    @property
    def key_handle(self) -> str:
        return self._key_handle

    def sign(self, data: bytes, algorithm: SignatureAlgorithm) -> bytes:
        return self._custodian.sign(self._key_handle, data, algorithm)


class RemoteSigningKey(RSAPrivateKey):
    """``RSAPrivateKey`` adapter whose private operation is delegated to a Signer.

    Only PKCS#1 v1.5 signatures with SHA-256 are supported. Any failure
    raised by the signer is re-raised as :class:`SigningFailedError`.

    Parameters
    ----------
    signer:
        The remote signing capability.
    public_key:
        The issuer's public key, taken from the issuer certificate.
    """

    def __init__(self, signer: Signer, public_key: RSAPublicKey) -> None:
        self._signer = signer
        self._public_key = public_key

    def sign(
        self,
        data: bytes,
        padding: asym_padding.AsymmetricPadding,
        algorithm: asym_utils.Prehashed | hashes.HashAlgorithm,
    ) -> bytes:
        if not isinstance(padding, asym_padding.PKCS1v15) or not isinstance(
            algorithm, hashes.SHA256
        ):
            raise SigningFailedError(
                f"Unsupported signature scheme {type(padding).__name__}/"
                f"{type(algorithm).__name__}; "
                "only PKCS#1 v1.5 with SHA-256 is available"
            )
        try:
            return self._signer.sign(bytes(data), SignatureAlgorithm.RS256)
        except SigningFailedError:
            raise
        except Exception as exc:
            raise SigningFailedError(f"Signer failed: {exc}") from exc

    def public_key(self) -> RSAPublicKey:
        return self._public_key

    @property
    def key_size(self) -> int:
        return self._public_key.key_size

    def decrypt(self, ciphertext: bytes, padding: asym_padding.AsymmetricPadding) -> bytes:
        raise NotImplementedError("Remote keys are restricted to signing")

    def private_numbers(self) -> rsa.RSAPrivateNumbers:
        raise NotImplementedError("Remote key material cannot be exported")

    def private_bytes(
        self,
        encoding: serialization.Encoding,
        format: serialization.PrivateFormat,
        encryption_algorithm: serialization.KeySerializationEncryption,
    ) -> bytes:
        raise NotImplementedError("Remote key material cannot be exported")

    def __copy__(self) -> "RemoteSigningKey":
        return RemoteSigningKey(self._signer, self._public_key)

    def __deepcopy__(self, memo: dict) -> "RemoteSigningKey":
        return self.__copy__()


class LocalKeyCustodian(KeyCustodian):
    """In-process custodian holding issuer keys in memory.

    Parameters
    ----------
    issuers:
        Mapping of issuer id to the issuer's certificate and private key.
    """

    def __init__(self, issuers: dict[str, tuple[x509.Certificate, RSAPrivateKey]]) -> None:
        self._certificates: dict[str, tuple[x509.Certificate, str]] = {}
        self._keys: dict[str, RSAPrivateKey] = {}
        for issuer_id, (cert, key) in issuers.items():
            key_handle = f"{issuer_id}/{uuid.uuid4().hex}"
            self._certificates[issuer_id] = (cert, key_handle)
            self._keys[key_handle] = key

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def generate_root(
        cls,
        issuer_id: str,
        common_name: str = "Leaf CA Root",
        key_size: int = 2048,
        validity_days: int = 365,
    ) -> "LocalKeyCustodian":
        """Generate a self-signed root CA and hold it under *issuer_id*.

        Raises
        ------
        ValueError
            If ``key_size`` is less than 2048.
        """
        if key_size < 2048:
            raise ValueError(f"key_size must be at least 2048 bits, got {key_size}")
        ca_key: RSAPrivateKey = rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size,
        )
        now = datetime.datetime.now(datetime.timezone.utc)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])

        ca_cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=validity_days))
            .add_extension(
                x509.KeyUsage(
                    digital_signature=False,
                    key_encipherment=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(x509.BasicConstraints(ca=True, path_length=1), critical=True)
            .add_extension(
                x509.ExtendedKeyUsage(
                    [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]
                ),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()),
                critical=False,
            )
            .sign(ca_key, hashes.SHA256())
        )
        return cls({issuer_id: (ca_cert, ca_key)})

    @classmethod
    def from_pem(cls, issuer_id: str, cert_pem: bytes, key_pem: bytes) -> "LocalKeyCustodian":
        """Load an issuer from PEM-encoded certificate and unencrypted key bytes.

        Raises
        ------
        TypeError
            If the key is not an RSA private key.
        """
        ca_cert = x509.load_pem_x509_certificate(cert_pem)
        ca_key = serialization.load_pem_private_key(key_pem, password=None)
        if not isinstance(ca_key, RSAPrivateKey):
            raise TypeError("Issuer key must be an RSA private key")
        return cls({issuer_id: (ca_cert, ca_key)})

    # ------------------------------------------------------------------
    # KeyCustodian interface
    # ------------------------------------------------------------------

    def fetch_issuer_certificate(self, issuer_id: str) -> IssuerCertificateBundle:
        try:
            cert, key_handle = self._certificates[issuer_id]
        except KeyError:
            raise KeyCustodyError(f"Unknown issuer {issuer_id!r}") from None
        return IssuerCertificateBundle(
            certificate_der=cert.public_bytes(serialization.Encoding.DER),
            key_handle=key_handle,
        )

    def sign(self, key_handle: str, data: bytes, algorithm: SignatureAlgorithm) -> bytes:
        if algorithm is not SignatureAlgorithm.RS256:
            raise KeyCustodyError(f"Unsupported signature algorithm {algorithm!r}")
        try:
            key = self._keys[key_handle]
        except KeyError:
            raise KeyCustodyError(f"Unknown key handle {key_handle!r}") from None
        return key.sign(data, asym_padding.PKCS1v15(), hashes.SHA256())

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def ca_cert_pem(self, issuer_id: str) -> bytes:
        """Return the PEM-encoded issuer certificate."""
        cert = x509.load_der_x509_certificate(
            self.fetch_issuer_certificate(issuer_id).certificate_der
        )
        return cert.public_bytes(serialization.Encoding.PEM)

    def ca_key_pem(self, issuer_id: str) -> bytes:
        """Return the PEM-encoded issuer private key (unencrypted).

        Only meaningful for a local development root; remote custodians
        have no equivalent.
        """
        key = self._keys[self.fetch_issuer_certificate(issuer_id).key_handle]
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
