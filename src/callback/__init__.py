"""Lark/Feishu callback verification and dispatch.

This package provides:
- Timestamp normalization and replay-window checks
- Signature verification
- Encrypted envelope decryption
- Callback parsing with the unsigned url_verification fallback
- A middleware pipeline and the Server that wires it all together
"""

from src.callback.crypto import decrypt_payload, encrypt_payload
from src.callback.errors import (
    CallbackError,
    ConfigurationError,
    DecryptionError,
    InvalidPayloadError,
    InvalidSignatureError,
    MissingHeadersError,
    MissingSecretError,
    TimestampExpiredError,
)
from src.callback.models import Message, ParsedCallback, Response
from src.callback.parser import (
    NONCE_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    CallbackParser,
)
from src.callback.pipeline import FunctionMiddleware, Middleware, MiddlewarePipeline
from src.callback.server import RequestContext, Server, normalize_headers
from src.callback.signature import compute_signature, verify_signature
from src.callback.timestamps import normalize_timestamp, within_tolerance

__all__ = [
    "NONCE_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "CallbackError",
    "CallbackParser",
    "ConfigurationError",
    "DecryptionError",
    "FunctionMiddleware",
    "InvalidPayloadError",
    "InvalidSignatureError",
    "Message",
    "Middleware",
    "MiddlewarePipeline",
    "MissingHeadersError",
    "MissingSecretError",
    "ParsedCallback",
    "RequestContext",
    "Response",
    "Server",
    "TimestampExpiredError",
    "compute_signature",
    "decrypt_payload",
    "encrypt_payload",
    "normalize_headers",
    "normalize_timestamp",
    "verify_signature",
    "within_tolerance",
]
