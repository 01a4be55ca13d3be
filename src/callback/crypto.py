"""AES-256-CBC envelope used for encrypted Lark callbacks.

Envelope: ``base64(iv[16] || ciphertext)`` with PKCS#7 padding, keyed by the
raw SHA-256 digest of the encrypt key.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from src.callback.errors import DecryptionError

_IV_SIZE = 16
_BLOCK_BITS = 128


def _derive_key(encrypt_key: str) -> bytes:
    return hashlib.sha256(encrypt_key.encode("utf-8")).digest()


def decrypt_payload(cipher_text: str, encrypt_key: str) -> str:
    """Decrypt an ``encrypt`` field and return the UTF-8 plaintext."""
    try:
        decoded = base64.b64decode(cipher_text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError("invalid encoding") from exc

    if len(decoded) <= _IV_SIZE:
        raise DecryptionError("payload too short")

    iv, cipher_bytes = decoded[:_IV_SIZE], decoded[_IV_SIZE:]
    decryptor = Cipher(algorithms.AES(_derive_key(encrypt_key)), modes.CBC(iv)).decryptor()
    unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
    try:
        padded = decryptor.update(cipher_bytes) + decryptor.finalize()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except ValueError as exc:
        # cryptography and bytes.decode both report failures as ValueError.
        raise DecryptionError("decryption failed") from exc


def encrypt_payload(plain_text: str, encrypt_key: str, iv: bytes | None = None) -> str:
    """Build an ``encrypt`` field the way the platform does."""
    if iv is None:
        iv = os.urandom(_IV_SIZE)
    if len(iv) != _IV_SIZE:
        raise ValueError(f"IV must be {_IV_SIZE} bytes, got {len(iv)}")

    padder = padding.PKCS7(_BLOCK_BITS).padder()
    padded = padder.update(plain_text.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(_derive_key(encrypt_key)), modes.CBC(iv)).encryptor()
    cipher_bytes = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(iv + cipher_bytes).decode("ascii")
