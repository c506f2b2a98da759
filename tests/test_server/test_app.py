"""Tests for leaf_ca.server.app — HTTP handler integration."""
from __future__ import annotations

import argparse
import base64
import json
import threading
import urllib.error
import urllib.request
from collections.abc import Iterator
from http.server import HTTPServer

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa

from leaf_ca.certificates.custody import LocalKeyCustodian
from leaf_ca.certificates.issuer import CertificateIssuer
from leaf_ca.serials.allocator import SerialAllocator
from leaf_ca.serials.store import CounterRecord, CounterStore, InMemoryCounterStore
from leaf_ca.server import routes
from leaf_ca.server.app import LeafCAHandler, create_server, resolve_bind_address
from leaf_ca.settings import IssuerSettings


def _b64_int(value: int) -> str:
    return base64.b64encode(value.to_bytes((value.bit_length() + 7) // 8, "big")).decode()


class _UnreachableStore(CounterStore):
    def read_counter(self, key: str) -> CounterRecord:
        raise OSError("storage unreachable")

    def create_counter(self, key: str, value: bytes) -> str:
        raise OSError("storage unreachable")

    def write_counter(self, key: str, value: bytes, expected_version_tag: str) -> str:
        raise OSError("storage unreachable")


@pytest.fixture(autouse=True)
def reset_server_state() -> None:
    """Reset module-level state before each test."""
    routes.reset_state()


@pytest.fixture()
def base_url() -> Iterator[str]:
    custodian = LocalKeyCustodian.generate_root("root", common_name="Test Root")
    routes.configure(
        CertificateIssuer(
            custodian=custodian,
            issuer_id="root",
            allocator=SerialAllocator(InMemoryCounterStore()),
        )
    )
    server = create_server(host="127.0.0.1", port=0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def _post(url: str, payload: bytes) -> tuple[int, dict[str, object]]:
    request = urllib.request.Request(
        url, data=payload, method="POST", headers={"Content-Type": "application/json"}
    )
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            return response.status, json.loads(response.read())
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read())


class TestCreateServer:
    def test_create_server_returns_http_server(self) -> None:
        server = create_server(host="127.0.0.1", port=0)
        try:
            assert isinstance(server, HTTPServer)
        finally:
            server.server_close()

    def test_create_server_uses_correct_handler(self) -> None:
        server = create_server(host="127.0.0.1", port=0)
        try:
            assert server.RequestHandlerClass is LeafCAHandler
        finally:
            server.server_close()


class TestResolveBindAddress:
    def test_falls_back_to_settings(self) -> None:
        args = argparse.Namespace(host=None, port=None)
        settings = IssuerSettings(host="0.0.0.0", port=9000)
        assert resolve_bind_address(args, settings) == ("0.0.0.0", 9000)

    def test_explicit_port_zero_is_kept(self) -> None:
        args = argparse.Namespace(host="", port=0)
        assert resolve_bind_address(args, IssuerSettings()) == ("", 0)


class TestLeafCAHandler:
    def test_health(self, base_url: str) -> None:
        with urllib.request.urlopen(f"{base_url}/health", timeout=10) as response:
            data = json.loads(response.read())
        assert response.status == 200
        assert data["issuer_configured"] is True

    def test_issue_certificate(self, base_url: str) -> None:
        numbers = (
            rsa.generate_private_key(public_exponent=65537, key_size=2048)
            .public_key()
            .public_numbers()
        )
        body = {
            "subjectName": "device-001",
            "publicKey": {"exponent": _b64_int(numbers.e), "modulus": _b64_int(numbers.n)},
        }
        status, data = _post(f"{base_url}/api/issueCertificate", json.dumps(body).encode())

        assert status == 200
        cert = x509.load_der_x509_certificate(base64.b64decode(data["certificate"]))
        assert cert.subject.rfc4514_string() == "CN=device-001"

    def test_invalid_json_returns_400(self, base_url: str) -> None:
        status, data = _post(f"{base_url}/api/issueCertificate", b"{not json")
        assert status == 400
        assert data["error"] == "Invalid JSON"

    def test_non_object_body_returns_400(self, base_url: str) -> None:
        status, _ = _post(f"{base_url}/api/issueCertificate", b"[1, 2]")
        assert status == 400

    def test_unknown_route_returns_404(self, base_url: str) -> None:
        status, _ = _post(f"{base_url}/api/unknown", b"{}")
        assert status == 404

    def test_storage_failure_returns_json_error(self, base_url: str) -> None:
        routes.configure(
            CertificateIssuer(
                custodian=LocalKeyCustodian.generate_root("root"),
                issuer_id="root",
                allocator=SerialAllocator(_UnreachableStore()),
            )
        )
        numbers = (
            rsa.generate_private_key(public_exponent=65537, key_size=2048)
            .public_key()
            .public_numbers()
        )
        body = {
            "subjectName": "device-001",
            "publicKey": {"exponent": _b64_int(numbers.e), "modulus": _b64_int(numbers.n)},
        }
        status, data = _post(f"{base_url}/api/issueCertificate", json.dumps(body).encode())

        assert status == 502
        assert data["error"] == "Downstream failure"
