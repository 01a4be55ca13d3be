"""Lark callback signature verification.

X-Lark-Signature is ``sha256(timestamp + nonce + encrypt_key + body)`` in
lowercase hex, computed over the raw timestamp header, not its parsed value.
An unset encrypt key contributes the empty string.
"""

from __future__ import annotations

import hashlib
import hmac


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def compute_signature(
    timestamp: str,
    nonce: str,
    body: str | bytes,
    encrypt_key: str | None = None,
) -> str:
    """Return the expected X-Lark-Signature for a callback."""
    digest = hashlib.sha256()
    digest.update(_to_bytes(timestamp))
    digest.update(_to_bytes(nonce))
    digest.update(_to_bytes(encrypt_key or ""))
    digest.update(_to_bytes(body))
    return digest.hexdigest()


def verify_signature(
    timestamp: str,
    nonce: str,
    body: str | bytes,
    encrypt_key: str | None,
    signature: str,
) -> bool:
    """Return True if ``signature`` matches the computed one.

    Constant-time comparison via hmac.compare_digest on bytes, so a
    non-ASCII signature is a plain mismatch rather than a TypeError.
    """
    expected = compute_signature(timestamp, nonce, body, encrypt_key)
    return hmac.compare_digest(expected.encode(), _to_bytes(signature))
