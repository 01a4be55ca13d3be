"""Callback parsing: header extraction, decryption, replay window, signature.

Steps, in order:
1. Extract timestamp / nonce / signature headers (case-insensitive)
2. Decode the JSON body, decrypting ``{"encrypt": ...}`` envelopes
3. Unsigned url_verification fallback
4. Replay window check
5. Signature check
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from src.callback.crypto import decrypt_payload
from src.callback.errors import (
    DecryptionError,
    InvalidPayloadError,
    InvalidSignatureError,
    MissingHeadersError,
    MissingSecretError,
    TimestampExpiredError,
)
from src.callback.models import Message, ParsedCallback
from src.callback.signature import verify_signature
from src.callback.timestamps import within_tolerance

logger = logging.getLogger(__name__)

TIMESTAMP_HEADER = "X-Lark-Request-Timestamp"
NONCE_HEADER = "X-Lark-Request-Nonce"
SIGNATURE_HEADER = "X-Lark-Signature"

DEFAULT_TOLERANCE_SECONDS = 300


class CallbackParser:
    """Authenticates and decodes raw callbacks for one encrypt key."""

    def __init__(self, encrypt_key: str | None = None) -> None:
        self._encrypt_key = encrypt_key

    @staticmethod
    def extract_headers(headers: Mapping[str, str]) -> tuple[str, str, str]:
        """Return (timestamp, nonce, signature); missing headers become ""."""
        lowered = {str(k).lower(): str(v) for k, v in headers.items()}
        return (
            lowered.get(TIMESTAMP_HEADER.lower(), ""),
            lowered.get(NONCE_HEADER.lower(), ""),
            lowered.get(SIGNATURE_HEADER.lower(), ""),
        )

    def decode_payload(self, raw_body: str | bytes) -> Message:
        """Parse the body as a JSON object, decrypting it if enveloped."""
        body = _load_object(raw_body, "Invalid callback json payload")

        if "encrypt" in body:
            if not self._encrypt_key:
                raise MissingSecretError("Encrypt key required for encrypted callback")
            cipher_text = body["encrypt"]
            if not isinstance(cipher_text, str):
                raise DecryptionError("invalid encoding")
            plain = decrypt_payload(cipher_text, self._encrypt_key)
            body = _load_object(plain, "Invalid decrypted callback payload")

        return body

    def parse(
        self,
        headers: Mapping[str, str],
        raw_body: str | bytes,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    ) -> ParsedCallback:
        timestamp, nonce, signature = self.extract_headers(headers)
        payload = self.decode_payload(raw_body)
        result = ParsedCallback.from_payload(payload)

        # Legacy handshakes may arrive without signing headers at all.
        if not (timestamp and nonce and signature):
            if result.is_challenge and payload.get("type") == "url_verification":
                logger.info("Accepting unsigned url_verification handshake")
                return result
            raise MissingHeadersError("Missing Lark callback headers")

        if not within_tolerance(timestamp, tolerance_seconds):
            raise TimestampExpiredError(timestamp, tolerance_seconds)

        if not verify_signature(timestamp, nonce, raw_body, self._encrypt_key, signature):
            raise InvalidSignatureError("Invalid Lark callback signature")

        return result


def _load_object(raw: str | bytes, message: str) -> dict[str, Any]:
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidPayloadError(message) from exc
    if not isinstance(body, dict):
        raise InvalidPayloadError(message)
    return body
