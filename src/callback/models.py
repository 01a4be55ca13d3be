"""Data models for the callback pipeline."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

# Decoded event body threaded through middleware (arbitrary JSON object).
Message = dict[str, Any]
Response = dict[str, Any]
Next = Callable[[Message], Response]


@dataclass(frozen=True)
class ParsedCallback:
    """Result of a successful parse.

    ``is_challenge`` is true iff the payload carries a ``challenge`` key, and
    ``challenge`` is only set in that case.
    """

    payload: Message
    is_challenge: bool
    challenge: str | None = None

    @classmethod
    def from_payload(cls, payload: Message) -> ParsedCallback:
        if "challenge" in payload:
            return cls(payload=payload, is_challenge=True, challenge=str(payload["challenge"]))
        return cls(payload=payload, is_challenge=False)
