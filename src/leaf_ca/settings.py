"""Settings for wiring an issuer from a settings file and the environment.

Settings are read from an optional JSON file and ``LEAF_CA_*`` environment
variables (the environment wins). The file may be a flat object or, like a
``local.settings.json``, carry the values under a ``Values`` key::

    {
        "Values": {
            "issuer_id": "root",
            "counter_dir": "/var/lib/leaf-ca/serials",
            "ca_cert_path": "/etc/leaf-ca/root.pem",
            "ca_key_path": "/etc/leaf-ca/root.key"
        }
    }

Collaborators are built from an explicit :class:`IssuerSettings` instance;
nothing here is held in module-level state.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field

from leaf_ca.certificates.custody import LocalKeyCustodian
from leaf_ca.certificates.issuer import CertificateIssuer
from leaf_ca.serials.allocator import (
    DEFAULT_COUNTER_KEY,
    DEFAULT_MAX_ATTEMPTS,
    ExponentialBackoff,
    SerialAllocator,
    no_backoff,
)
from leaf_ca.serials.store import FilesystemCounterStore

ENV_PREFIX = "LEAF_CA_"


class IssuerSettings(BaseModel):
    """Configuration for one issuing authority."""

    issuer_id: str = "root"
    counter_dir: Path = Path("serials")
    counter_key: str = DEFAULT_COUNTER_KEY
    max_allocation_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    backoff_base_delay: float = Field(default=0.0, ge=0.0)
    backoff_max_delay: float = Field(default=0.5, ge=0.0)
    ca_cert_path: Optional[Path] = None
    ca_key_path: Optional[Path] = None
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> IssuerSettings:
    """Load settings from *path* (optional) overlaid with environment variables.

    Raises
    ------
    pydantic.ValidationError
        If a value has the wrong type or is out of range.
    ValueError
        If the settings file is not a JSON object.
    """
    values: dict[str, object] = {}
    if path is not None:
        loaded = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(loaded, dict):
            raise ValueError(f"Settings file {path} must contain a JSON object")
        nested = loaded.get("Values")
        values.update(nested if isinstance(nested, dict) else loaded)

    env = os.environ if environ is None else environ
    for name in IssuerSettings.model_fields:
        env_value = env.get(ENV_PREFIX + name.upper())
        if env_value is not None:
            values[name] = env_value

    return IssuerSettings.model_validate(values)


def build_serial_allocator(settings: IssuerSettings) -> SerialAllocator:
    """Create the filesystem-backed serial allocator described by *settings*."""
    if settings.backoff_base_delay > 0:
        backoff = ExponentialBackoff(
            base_delay=settings.backoff_base_delay,
            max_delay=settings.backoff_max_delay,
        )
    else:
        backoff = no_backoff
    return SerialAllocator(
        store=FilesystemCounterStore(settings.counter_dir),
        counter_key=settings.counter_key,
        max_attempts=settings.max_allocation_attempts,
        backoff=backoff,
    )


def build_certificate_issuer(settings: IssuerSettings) -> CertificateIssuer:
    """Wire a CertificateIssuer from *settings*.

    Raises
    ------
    ValueError
        If the issuer certificate or key path is not configured.
    """
    if settings.ca_cert_path is None or settings.ca_key_path is None:
        raise ValueError(
            "ca_cert_path and ca_key_path must be configured "
            "(create a development root with `leaf-ca init-ca`)"
        )
    custodian = LocalKeyCustodian.from_pem(
        settings.issuer_id,
        cert_pem=settings.ca_cert_path.read_bytes(),
        key_pem=settings.ca_key_path.read_bytes(),
    )
    return CertificateIssuer(
        custodian=custodian,
        issuer_id=settings.issuer_id,
        allocator=build_serial_allocator(settings),
    )
