#!/usr/bin/env python3
"""Example: Concurrent issuance against a shared file-backed counter

Several independent issuers (think: separate worker processes) share one
serial counter directory. Optimistic concurrency keeps every serial unique.

Usage:
    python examples/02_concurrent_issuance.py

Requirements:
    pip install leaf-ca
"""
from __future__ import annotations

import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric import rsa

from leaf_ca import (
    CertificateIssuer,
    CertificateRequest,
    ExponentialBackoff,
    FilesystemCounterStore,
    LocalKeyCustodian,
    PublicKeyMaterial,
    SerialAllocator,
)

WORKERS = 8


def main() -> None:
    custodian = LocalKeyCustodian.generate_root("root")
    device_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    request = CertificateRequest(
        subject_name="device-001",
        public_key=PublicKeyMaterial.from_public_key(device_key.public_key()),
    )

    with tempfile.TemporaryDirectory() as counter_dir:
        # One allocator per worker, each with its own store handle.
        issuers = [
            CertificateIssuer(
                custodian,
                "root",
                SerialAllocator(
                    FilesystemCounterStore(Path(counter_dir)),
                    max_attempts=WORKERS,
                    backoff=ExponentialBackoff(base_delay=0.005),
                ),
            )
            for _ in range(WORKERS)
        ]
        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            issued = list(pool.map(lambda issuer: issuer.issue_certificate(request), issuers))

    serials = sorted(cert.serial_number_int for cert in issued)
    print(f"Issued {len(issued)} certificates for the same request")
    print(f"Serials: {serials}")
    print(f"All unique: {len(set(serials)) == len(serials)}")


if __name__ == "__main__":
    main()
