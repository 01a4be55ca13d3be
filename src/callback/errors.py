"""Error taxonomy for Lark callback handling.

Every error is raised by client input or missing configuration, never by a
transient fault, so none of them is retried. The hosting layer maps each
``reason`` to a rejection response.
"""

from __future__ import annotations


class CallbackError(Exception):
    """Base class for callback rejections."""

    reason = "callback_error"


class ConfigurationError(CallbackError):
    """Raised when headers/body are missing and no request context is configured."""

    reason = "configuration"


class InvalidPayloadError(CallbackError):
    """Raised when the body (or the decrypted body) is not a JSON object."""

    reason = "invalid_payload"


class MissingSecretError(CallbackError):
    """Raised when an encrypted envelope arrives but no encrypt key is set."""

    reason = "missing_secret"


class DecryptionError(CallbackError):
    """Raised when an ``encrypt`` field cannot be decrypted."""

    reason = "decryption_failed"


class MissingHeadersError(CallbackError):
    """Raised when signing headers are absent and the handshake fallback does not apply."""

    reason = "missing_headers"


class TimestampExpiredError(CallbackError):
    """Raised when the request timestamp falls outside the tolerance window."""

    reason = "timestamp_expired"

    def __init__(self, timestamp: str, tolerance_seconds: int) -> None:
        self.timestamp = timestamp
        self.tolerance_seconds = tolerance_seconds
        super().__init__(
            f"Callback timestamp {timestamp!r} outside {tolerance_seconds}s window",
        )


class InvalidSignatureError(CallbackError):
    """Raised when the computed signature does not match X-Lark-Signature."""

    reason = "invalid_signature"
