"""Tests for leaf_ca.certificates.extensions — AKI derivation and leaf extensions."""
from __future__ import annotations

import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from leaf_ca.certificates.extensions import (
    authority_key_identifier_from_ski,
    issuer_subject_key_identifier,
    leaf_extensions,
)
from leaf_ca.errors import MissingAuthorityKeyIdentifierError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _self_signed(key: rsa.RSAPrivateKey, with_ski: bool) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Root")])
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(1)
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
    )
    if with_ski:
        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False
        )
    return builder.sign(key, hashes.SHA256())


# ---------------------------------------------------------------------------
# Authority Key Identifier derivation
# ---------------------------------------------------------------------------


class TestAuthorityKeyIdentifierFromSki:
    def test_byte_layout(self) -> None:
        identifier = bytes(range(0xA0, 0xB4))
        aki = authority_key_identifier_from_ski(b"\x04\x14" + identifier)
        assert aki.public_bytes() == b"\x30\x16\x80\x14" + identifier

    def test_only_key_identifier_is_set(self) -> None:
        identifier = b"\x11" * 20
        aki = authority_key_identifier_from_ski(b"\x04\x14" + identifier)
        assert aki.key_identifier == identifier
        assert aki.authority_cert_issuer is None
        assert aki.authority_cert_serial_number is None

    def test_rejects_non_octet_string(self) -> None:
        with pytest.raises(MissingAuthorityKeyIdentifierError):
            authority_key_identifier_from_ski(b"\x30\x03\x02\x01\x01")

    def test_rejects_trailing_data(self) -> None:
        with pytest.raises(MissingAuthorityKeyIdentifierError):
            authority_key_identifier_from_ski(b"\x04\x01\xaa\xbb")

    def test_rejects_empty_identifier(self) -> None:
        with pytest.raises(MissingAuthorityKeyIdentifierError):
            authority_key_identifier_from_ski(b"\x04\x00")


class TestIssuerSubjectKeyIdentifier:
    def test_returns_raw_octet_string(self, key: rsa.RSAPrivateKey) -> None:
        cert = _self_signed(key, with_ski=True)
        raw = issuer_subject_key_identifier(cert)
        digest = x509.SubjectKeyIdentifier.from_public_key(key.public_key()).digest
        assert raw == b"\x04\x14" + digest

    def test_missing_extension_raises(self, key: rsa.RSAPrivateKey) -> None:
        cert = _self_signed(key, with_ski=False)
        with pytest.raises(MissingAuthorityKeyIdentifierError):
            issuer_subject_key_identifier(cert)


# ---------------------------------------------------------------------------
# Leaf extension set
# ---------------------------------------------------------------------------


class TestLeafExtensions:
    def test_five_extensions_with_expected_criticality(self, key: rsa.RSAPrivateKey) -> None:
        aki = authority_key_identifier_from_ski(b"\x04\x14" + b"\x01" * 20)
        extensions = leaf_extensions(key.public_key(), aki)
        by_type = {type(ext): critical for ext, critical in extensions}
        assert by_type == {
            x509.KeyUsage: True,
            x509.BasicConstraints: True,
            x509.ExtendedKeyUsage: False,
            x509.SubjectKeyIdentifier: False,
            x509.AuthorityKeyIdentifier: False,
        }

    def test_key_usage_bits(self, key: rsa.RSAPrivateKey) -> None:
        aki = authority_key_identifier_from_ski(b"\x04\x14" + b"\x01" * 20)
        key_usage = next(
            ext for ext, _ in leaf_extensions(key.public_key(), aki)
            if isinstance(ext, x509.KeyUsage)
        )
        assert key_usage.digital_signature
        assert key_usage.key_encipherment
        assert not key_usage.key_cert_sign
        assert not key_usage.crl_sign

    def test_not_a_ca(self, key: rsa.RSAPrivateKey) -> None:
        aki = authority_key_identifier_from_ski(b"\x04\x14" + b"\x01" * 20)
        constraints = next(
            ext for ext, _ in leaf_extensions(key.public_key(), aki)
            if isinstance(ext, x509.BasicConstraints)
        )
        assert constraints.ca is False

    def test_client_and_server_auth(self, key: rsa.RSAPrivateKey) -> None:
        aki = authority_key_identifier_from_ski(b"\x04\x14" + b"\x01" * 20)
        eku = next(
            ext for ext, _ in leaf_extensions(key.public_key(), aki)
            if isinstance(ext, x509.ExtendedKeyUsage)
        )
        assert list(eku) == [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]

    def test_subject_key_identifier_is_sha1_of_public_key(self, key: rsa.RSAPrivateKey) -> None:
        aki = authority_key_identifier_from_ski(b"\x04\x14" + b"\x01" * 20)
        ski = next(
            ext for ext, _ in leaf_extensions(key.public_key(), aki)
            if isinstance(ext, x509.SubjectKeyIdentifier)
        )
        assert ski == x509.SubjectKeyIdentifier.from_public_key(key.public_key())
        assert len(ski.digest) == 20
