"""Shared Pydantic data models for the Lark callback gateway."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# --- Enums ---


class AuditEventType(str, Enum):
    CALLBACK_CHALLENGE = "callback_challenge"
    CALLBACK_ACCEPTED = "callback_accepted"
    CALLBACK_REJECTED = "callback_rejected"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
