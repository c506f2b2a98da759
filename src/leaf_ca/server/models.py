"""Pydantic request/response models for the issuance HTTP server."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PublicKeyPayload(BaseModel):
    """RSA public key components, each base64-encoded big-endian bytes."""

    exponent: str
    modulus: str


class IssueCertificateRequest(BaseModel):
    """Request body for POST /api/issueCertificate."""

    model_config = ConfigDict(populate_by_name=True)

    subject_name: str = Field(alias="subjectName")
    public_key: PublicKeyPayload = Field(alias="publicKey")


class IssueCertificateResponse(BaseModel):
    """Response body carrying the base64-encoded DER certificate."""

    certificate: str


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = "ok"
    service: str = "leaf-ca"
    version: str = "0.1.0"
    issuer_configured: bool = False


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str = ""


__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "IssueCertificateRequest",
    "IssueCertificateResponse",
    "PublicKeyPayload",
]
