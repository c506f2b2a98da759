#!/usr/bin/env python3
"""Example: Quickstart

Demonstrates the minimal setup for leaf-ca: a development root held by a
LocalKeyCustodian, an in-memory serial counter, and one issued certificate.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install leaf-ca
"""
from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric import rsa

import leaf_ca
from leaf_ca import (
    CertificateIssuer,
    CertificateRequest,
    InMemoryCounterStore,
    LocalKeyCustodian,
    PublicKeyMaterial,
    SerialAllocator,
)


def main() -> None:
    print(f"leaf-ca version: {leaf_ca.__version__}")

    # Step 1: Create a development root CA
    custodian = LocalKeyCustodian.generate_root("root", common_name="Quickstart Root")
    issuer = CertificateIssuer(custodian, "root", SerialAllocator(InMemoryCounterStore()))

    # Step 2: The applicant's key pair (normally generated on the device)
    device_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    request = CertificateRequest(
        subject_name="device-001",
        public_key=PublicKeyMaterial.from_public_key(device_key.public_key()),
    )

    # Step 3: Issue
    issued = issuer.issue_certificate(request)
    print(f"Subject: {issued.subject_name}")
    print(f"Issuer:  {issued.issuer_subject_name}")
    print(f"Serial:  {issued.serial_number.hex()}")
    print(f"Valid:   {issued.not_before:%Y-%m-%d} .. {issued.not_after:%Y-%m-%d}")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
