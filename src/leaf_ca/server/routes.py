"""Route handler functions for the issuance HTTP server.

Each function accepts parsed request data and returns a tuple of
(status_code, response_dict). The HTTP handler in app.py calls these
functions and serializes the results to JSON.
"""
from __future__ import annotations

import logging

from pydantic import ValidationError

from leaf_ca.certificates.custody import KeyCustodyError
from leaf_ca.certificates.issuer import CertificateIssuer
from leaf_ca.certificates.request import CertificateRequest, PublicKeyMaterial
from leaf_ca.errors import (
    AllocationExhaustedError,
    InvalidSubjectNameError,
    MalformedPublicKeyError,
    MissingAuthorityKeyIdentifierError,
    SerialOverflowError,
    SigningFailedError,
)
from leaf_ca.serials.store import CounterStoreError
from leaf_ca.server.models import (
    ErrorResponse,
    HealthResponse,
    IssueCertificateRequest,
    IssueCertificateResponse,
)

logger = logging.getLogger(__name__)


# Module-level shared state
_issuer: CertificateIssuer | None = None


def configure(issuer: CertificateIssuer) -> None:
    """Install the issuer that serves issuance requests."""
    global _issuer
    _issuer = issuer


def reset_state() -> None:
    """Forget the configured issuer — used in tests and for clean restarts."""
    global _issuer
    _issuer = None


def handle_issue_certificate(body: dict[str, object]) -> tuple[int, dict[str, object]]:
    """Handle POST /api/issueCertificate.

    Parameters
    ----------
    body:
        Parsed JSON request body.

    Returns
    -------
    tuple[int, dict[str, object]]
        HTTP status code and response dictionary.
    """
    if _issuer is None:
        return 503, ErrorResponse(
            error="Service unavailable", detail="No issuer is configured."
        ).model_dump()

    try:
        payload = IssueCertificateRequest.model_validate(body)
    except ValidationError as exc:
        return 422, ErrorResponse(error="Validation error", detail=str(exc)).model_dump()

    try:
        request = CertificateRequest(
            subject_name=payload.subject_name,
            public_key=PublicKeyMaterial.from_base64(
                modulus=payload.public_key.modulus,
                exponent=payload.public_key.exponent,
            ),
        )
        issued = _issuer.issue_certificate(request)
    except (MalformedPublicKeyError, InvalidSubjectNameError) as exc:
        return 400, ErrorResponse(error="Bad request", detail=str(exc)).model_dump()
    except (AllocationExhaustedError, SerialOverflowError) as exc:
        logger.warning("Serial allocation failed: %s", exc)
        return 503, ErrorResponse(
            error="Serial allocation failed", detail=str(exc)
        ).model_dump()
    except SigningFailedError as exc:
        logger.error("Signing failed: %s", exc)
        return 502, ErrorResponse(error="Signing failed", detail=str(exc)).model_dump()
    except MissingAuthorityKeyIdentifierError as exc:
        logger.error("Issuer is misconfigured: %s", exc)
        return 500, ErrorResponse(
            error="Issuer misconfigured", detail=str(exc)
        ).model_dump()
    except (CounterStoreError, KeyCustodyError, OSError) as exc:
        logger.error("Downstream failure during issuance: %s", exc)
        return 502, ErrorResponse(
            error="Downstream failure", detail=str(exc)
        ).model_dump()

    return 200, IssueCertificateResponse(certificate=issued.to_base64()).model_dump()


def handle_health() -> tuple[int, dict[str, object]]:
    """Handle GET /health.

    Returns
    -------
    tuple[int, dict[str, object]]
        HTTP status code and response dictionary.
    """
    response = HealthResponse(issuer_configured=_issuer is not None)
    return 200, response.model_dump()


__all__ = [
    "configure",
    "reset_state",
    "handle_issue_certificate",
    "handle_health",
]
