"""Shared test fixtures for the Lark callback gateway."""

from __future__ import annotations

import json
import time
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.callback.crypto import encrypt_payload
from src.callback.signature import compute_signature
from src.models import AuditEvent, AuditEventType, RiskLevel

ENCRYPT_KEY = "secret-key"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.CALLBACK_REJECTED,
        "action": "parse",
        "result": "failure",
        "risk_level": RiskLevel.HIGH,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)


def make_challenge_body(challenge: str = "challenge-token", **extra: Any) -> str:
    payload: dict[str, Any] = {"type": "url_verification", "challenge": challenge}
    payload.update(extra)
    return json.dumps(payload)


def make_event_body(event_type: str = "im.message.receive_v1", **event: Any) -> dict[str, Any]:
    return {
        "schema": "2.0",
        "header": {
            "event_id": "ev-1",
            "event_type": event_type,
            "app_id": "cli_test",
            "token": "verify-token",
        },
        "event": event or {"foo": "bar"},
    }


def make_encrypted_body(payload: dict[str, Any], encrypt_key: str = ENCRYPT_KEY) -> str:
    return json.dumps({"encrypt": encrypt_payload(json.dumps(payload), encrypt_key)})


def make_signed_headers(
    body: str,
    encrypt_key: str | None = None,
    timestamp: str | None = None,
    nonce: str = "nonce-123",
) -> dict[str, str]:
    """Headers with a valid X-Lark-Signature for ``body``."""
    if timestamp is None:
        timestamp = str(int(time.time()))
    return {
        "X-Lark-Request-Timestamp": timestamp,
        "X-Lark-Request-Nonce": nonce,
        "X-Lark-Signature": compute_signature(timestamp, nonce, body, encrypt_key),
    }
