"""CLI entry point for leaf-ca.

Invoked as::

    leaf-ca [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m leaf_ca.cli.main

Commands
--------
init-ca          Create a development root CA (certificate + key PEM files)
issue            Issue a leaf certificate for a subject and RSA public key
serial show      Show the last allocated serial number
serial allocate  Allocate (and consume) the next serial number
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.serialization import load_pem_public_key
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from leaf_ca.certificates.custody import KeyCustodyError
from leaf_ca.errors import IssuanceError
from leaf_ca.settings import (
    IssuerSettings,
    build_certificate_issuer,
    build_serial_allocator,
    load_settings,
)

console = Console()

_SETTINGS_OPTION = click.option(
    "--settings",
    "settings_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON settings file; LEAF_CA_* environment variables override it.",
)


def _load_settings(settings_file: Path | None) -> IssuerSettings:
    try:
        return load_settings(settings_file)
    except (ValidationError, ValueError) as exc:
        console.print(f"[red]Error:[/red] invalid settings: {exc}")
        sys.exit(1)


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="leaf-ca")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="WARNING",
    help="Logging level.",
)
def cli(log_level: str) -> None:
    """Leaf certificate issuance with conflict-free serial allocation"""
    logging.basicConfig(level=getattr(logging, log_level))


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from leaf_ca import __version__

    console.print(f"[bold]leaf-ca[/bold] v{__version__}")


# ------------------------------------------------------------------
# init-ca
# ------------------------------------------------------------------


@cli.command(name="init-ca")
@click.option("--issuer-id", default="root", show_default=True, help="Issuer identifier.")
@click.option(
    "--common-name", default="Leaf CA Root", show_default=True, help="Root CA common name."
)
@click.option("--cert-out", type=click.Path(path_type=Path), required=True)
@click.option("--key-out", type=click.Path(path_type=Path), required=True)
@click.option("--key-size", type=int, default=2048, show_default=True)
@click.option("--validity-days", type=int, default=365, show_default=True)
@click.option("--force", is_flag=True, help="Overwrite existing output files.")
def init_ca_command(
    issuer_id: str,
    common_name: str,
    cert_out: Path,
    key_out: Path,
    key_size: int,
    validity_days: int,
    force: bool,
) -> None:
    """Generate a self-signed development root CA.

    The private key is written unencrypted; use it only for development.
    """
    from leaf_ca.certificates.custody import LocalKeyCustodian

    for target in (cert_out, key_out):
        if target.exists() and not force:
            console.print(f"[red]Error:[/red] {target} exists (use --force to overwrite)")
            sys.exit(1)

    try:
        custodian = LocalKeyCustodian.generate_root(
            issuer_id,
            common_name=common_name,
            key_size=key_size,
            validity_days=validity_days,
        )
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    cert_out.write_bytes(custodian.ca_cert_pem(issuer_id))
    key_out.write_bytes(custodian.ca_key_pem(issuer_id))
    key_out.chmod(0o600)

    console.print(f"[green]Created[/green] root CA [bold]{common_name}[/bold]")
    console.print(f"  Certificate: {cert_out}")
    console.print(f"  Key:         {key_out}")


# ------------------------------------------------------------------
# issue
# ------------------------------------------------------------------


@cli.command(name="issue")
@click.argument("subject_name")
@click.option(
    "--public-key",
    "public_key_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="PEM-encoded RSA public key of the applicant.",
)
@click.option("--out", type=click.Path(path_type=Path), default=None, help="Output file.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["pem", "der", "base64"]),
    default="pem",
    show_default=True,
)
@_SETTINGS_OPTION
def issue_command(
    subject_name: str,
    public_key_file: Path,
    out: Path | None,
    output_format: str,
    settings_file: Path | None,
) -> None:
    """Issue a certificate with subject CN=SUBJECT_NAME."""
    from leaf_ca.certificates.request import CertificateRequest, PublicKeyMaterial

    if output_format == "der" and out is None:
        console.print("[red]Error:[/red] DER output requires --out")
        sys.exit(1)

    try:
        public_key = load_pem_public_key(public_key_file.read_bytes())
    except ValueError as exc:
        console.print(f"[red]Error:[/red] cannot read public key: {exc}")
        sys.exit(1)
    if not isinstance(public_key, RSAPublicKey):
        console.print("[red]Error:[/red] only RSA public keys are supported")
        sys.exit(1)

    settings = _load_settings(settings_file)
    try:
        issuer = build_certificate_issuer(settings)
        issued = issuer.issue_certificate(
            CertificateRequest(
                subject_name=subject_name,
                public_key=PublicKeyMaterial.from_public_key(public_key),
            )
        )
    except (IssuanceError, KeyCustodyError, OSError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if output_format == "der":
        encoded = issued.certificate_der
    elif output_format == "base64":
        encoded = issued.to_base64().encode("ascii")
    else:
        encoded = issued.to_pem()

    if out is not None:
        out.write_bytes(encoded)

    table = Table(title="Issued Certificate", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Subject", issued.subject_name)
    table.add_row("Issuer", issued.issuer_subject_name)
    table.add_row("Serial", issued.serial_number.hex())
    table.add_row("Not before", issued.not_before.isoformat())
    table.add_row("Not after", issued.not_after.isoformat())
    table.add_row("Written to", str(out) if out else "(stdout)")
    console.print(table)

    if out is None and output_format != "der":
        click.echo(encoded.decode("ascii"))


# ------------------------------------------------------------------
# serial command group
# ------------------------------------------------------------------


@cli.group(name="serial")
def serial_group() -> None:
    """Inspect or advance the serial counter."""


@serial_group.command(name="show")
@_SETTINGS_OPTION
def serial_show_command(settings_file: Path | None) -> None:
    """Show the most recently allocated serial number."""
    allocator = build_serial_allocator(_load_settings(settings_file))
    current = allocator.current_serial()
    if current is None:
        console.print("[yellow]No serial has been allocated yet.[/yellow]")
        return
    console.print(f"Counter {allocator.counter_key!r}: [bold]{current.hex()}[/bold]")


@serial_group.command(name="allocate")
@_SETTINGS_OPTION
def serial_allocate_command(settings_file: Path | None) -> None:
    """Allocate the next serial number. The serial is consumed permanently."""
    allocator = build_serial_allocator(_load_settings(settings_file))
    try:
        serial = allocator.allocate_serial()
    except IssuanceError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)
    console.print(f"Allocated serial [bold]{serial.hex()}[/bold]")


if __name__ == "__main__":
    cli()
