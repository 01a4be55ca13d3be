"""Click CLI for working with Lark callbacks locally."""

from __future__ import annotations

import json
from typing import BinaryIO

import click

from src.audit.logger import validate_audit_chain
from src.callback.crypto import decrypt_payload, encrypt_payload
from src.callback.errors import CallbackError
from src.callback.parser import (
    DEFAULT_TOLERANCE_SECONDS,
    NONCE_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    CallbackParser,
)
from src.callback.signature import compute_signature
from src.callback.timestamps import normalize_timestamp

_encrypt_key_option = click.option(
    "--encrypt-key", envvar="LARK_ENCRYPT_KEY", default=None, help="Shared encrypt key.",
)


@click.group()
def cli() -> None:
    """Lark callback developer tools."""


@cli.command()
@click.argument("body")
@click.option("--timestamp", required=True, help="Raw X-Lark-Request-Timestamp value.")
@click.option("--nonce", required=True, help="X-Lark-Request-Nonce value.")
@_encrypt_key_option
def sign(body: str, timestamp: str, nonce: str, encrypt_key: str | None) -> None:
    """Print the X-Lark-Signature for BODY."""
    click.echo(compute_signature(timestamp, nonce, body, encrypt_key))


@cli.command()
@click.argument("plaintext")
@click.option("--encrypt-key", envvar="LARK_ENCRYPT_KEY", required=True)
def encrypt(plaintext: str, encrypt_key: str) -> None:
    """Print an encrypted envelope body for PLAINTEXT."""
    click.echo(json.dumps({"encrypt": encrypt_payload(plaintext, encrypt_key)}))


@cli.command()
@click.argument("cipher_text")
@click.option("--encrypt-key", envvar="LARK_ENCRYPT_KEY", required=True)
def decrypt(cipher_text: str, encrypt_key: str) -> None:
    """Decrypt the value of an ``encrypt`` field."""
    try:
        click.echo(decrypt_payload(cipher_text, encrypt_key))
    except CallbackError as exc:
        raise click.ClickException(f"{exc.reason}: {exc}") from exc


@cli.command("normalize-timestamp")
@click.argument("raw")
def normalize_timestamp_command(raw: str) -> None:
    """Print epoch seconds for a timestamp header value (0 if unparseable)."""
    click.echo(normalize_timestamp(raw))


@cli.command()
@click.argument("body_file", type=click.File("rb"))
@click.option("--timestamp", default="", help="Raw X-Lark-Request-Timestamp value.")
@click.option("--nonce", default="", help="X-Lark-Request-Nonce value.")
@click.option("--signature", default="", help="X-Lark-Signature value.")
@click.option("--tolerance", default=DEFAULT_TOLERANCE_SECONDS, show_default=True)
@_encrypt_key_option
def verify(
    body_file: BinaryIO,
    timestamp: str,
    nonce: str,
    signature: str,
    tolerance: int,
    encrypt_key: str | None,
) -> None:
    """Run BODY_FILE through the full callback parser and print the payload."""
    headers = {
        TIMESTAMP_HEADER: timestamp,
        NONCE_HEADER: nonce,
        SIGNATURE_HEADER: signature,
    }
    try:
        parsed = CallbackParser(encrypt_key).parse(headers, body_file.read(), tolerance)
    except CallbackError as exc:
        raise click.ClickException(f"{exc.reason}: {exc}") from exc
    click.echo(json.dumps(parsed.payload, indent=2, ensure_ascii=False))


@cli.command("audit-verify")
@click.argument("log_path", type=click.Path(dir_okay=False))
def audit_verify(log_path: str) -> None:
    """Check the hash chain of a callback audit log."""
    result = validate_audit_chain(log_path)
    if not result.valid:
        raise click.ClickException(f"Audit chain broken at line {result.broken_at_line}")
    click.echo("Audit chain intact")
