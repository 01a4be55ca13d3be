"""Callback server: composition root for parser, pipeline and audit trail."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

from src.callback.errors import CallbackError, ConfigurationError
from src.callback.models import Message, Next, ParsedCallback, Response
from src.callback.parser import DEFAULT_TOLERANCE_SECONDS, CallbackParser
from src.callback.pipeline import Middleware, MiddlewarePipeline
from src.models import AuditEvent, AuditEventType, RiskLevel

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


class RequestContext(Protocol):
    """Source of the live request when ``serve`` is called without arguments."""

    def headers(self) -> Mapping[str, Any]: ...

    def body(self) -> str | bytes | None: ...


def normalize_headers(headers: Mapping[str, Any]) -> dict[str, str]:
    """Flatten header values to strings; list values keep their last element."""
    normalized: dict[str, str] = {}
    for key, value in headers.items():
        if isinstance(value, (list, tuple)):
            value = value[-1] if value else ""
        if isinstance(value, bytes):
            value = value.decode("latin-1")
        normalized[str(key)] = str(value)
    return normalized


class Server:
    """Verifies Lark callbacks and dispatches them through middleware.

    ``encrypt_key`` and the middleware list are configured once before
    traffic; concurrent ``serve`` calls on one instance only read them.
    """

    def __init__(
        self,
        encrypt_key: str | None = None,
        request_context: RequestContext | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._encrypt_key = encrypt_key
        self._parser = CallbackParser(encrypt_key)
        self._pipeline = MiddlewarePipeline()
        self._request_context = request_context
        self._audit = audit_logger

    @classmethod
    def from_env(cls, audit_logger: AuditLogger | None = None) -> Server:
        """Create a Server from LARK_ENCRYPT_KEY."""
        encrypt_key = os.environ.get("LARK_ENCRYPT_KEY") or None
        return cls(encrypt_key=encrypt_key, audit_logger=audit_logger)

    @property
    def encrypts(self) -> bool:
        return bool(self._encrypt_key)

    def register(self, middleware: Middleware | Callable[[Message, Next], Response]) -> Server:
        self._pipeline.register(middleware)
        return self

    def parse(
        self,
        headers: Mapping[str, Any],
        raw_body: str | bytes,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    ) -> ParsedCallback:
        return self._parser.parse(normalize_headers(headers), raw_body, tolerance_seconds)

    def serve(
        self,
        headers: Mapping[str, Any] | None = None,
        raw_body: str | bytes | None = None,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        source_ip: str | None = None,
    ) -> Response:
        """Parse a callback and run it through the middleware pipeline.

        Challenges are answered with ``{"challenge": ...}`` and never reach
        the pipeline. Any CallbackError is audited and re-raised.
        ``source_ip`` is only recorded in audit events.
        """
        try:
            headers, raw_body = self._resolve_request(headers, raw_body)
            parsed = self.parse(headers, raw_body, tolerance_seconds)
        except CallbackError as exc:
            logger.warning("Rejected Lark callback: %s (%s)", exc.reason, exc)
            self._audit_event(
                AuditEventType.CALLBACK_REJECTED,
                action="parse",
                result="failure",
                risk_level=RiskLevel.HIGH,
                source_ip=source_ip,
                details={"reason": exc.reason},
            )
            raise

        if parsed.is_challenge and parsed.challenge is not None:
            self._audit_event(
                AuditEventType.CALLBACK_CHALLENGE,
                action="challenge",
                result="success",
                risk_level=RiskLevel.INFO,
                source_ip=source_ip,
            )
            return {"challenge": parsed.challenge}

        self._audit_event(
            AuditEventType.CALLBACK_ACCEPTED,
            action="dispatch",
            result="success",
            risk_level=RiskLevel.INFO,
            source_ip=source_ip,
            details=_event_details(parsed.payload),
        )
        return self._pipeline.build()(parsed.payload)

    def _resolve_request(
        self,
        headers: Mapping[str, Any] | None,
        raw_body: str | bytes | None,
    ) -> tuple[Mapping[str, Any], str | bytes]:
        if headers is not None and raw_body is not None:
            return headers, raw_body
        if self._request_context is None:
            raise ConfigurationError("Missing headers/body for callback parsing")

        if headers is None:
            headers = self._request_context.headers()
        if raw_body is None:
            raw_body = self._request_context.body()
        if raw_body is None:
            raise ConfigurationError("Empty callback body")
        return headers, raw_body

    def _audit_event(
        self,
        event_type: AuditEventType,
        action: str,
        result: str,
        risk_level: RiskLevel,
        details: dict[str, object] | None = None,
        source_ip: str | None = None,
    ) -> None:
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=event_type,
                source_ip=source_ip,
                action=action,
                result=result,
                risk_level=risk_level,
                details=details,
            ))


def _event_details(payload: Message) -> dict[str, object]:
    """Pick non-sensitive routing fields from a v2 event header."""
    header = payload.get("header")
    if not isinstance(header, dict):
        return {}
    return {
        key: header[key]
        for key in ("event_id", "event_type", "app_id")
        if key in header
    }
