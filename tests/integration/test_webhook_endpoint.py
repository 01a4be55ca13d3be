"""Integration tests for the FastAPI callback endpoint."""

from __future__ import annotations

import json
import time
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from src.audit.logger import AuditLogger, validate_audit_chain
from src.callback.models import Message, Next, Response
from src.callback.server import Server
from src.proxy.app import create_app, create_app_from_env
from tests.conftest import (
    ENCRYPT_KEY,
    make_challenge_body,
    make_encrypted_body,
    make_event_body,
    make_signed_headers,
)


def _client(server: Server, **kwargs: object) -> AsyncClient:
    app = create_app(server, **kwargs)  # type: ignore[arg-type]
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestCallbackEndpoint:

    @pytest.mark.asyncio
    async def test_health(self) -> None:
        async with _client(Server()) as client:
            resp = await client.get("/health")
        assert resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_unsigned_challenge(self) -> None:
        async with _client(Server()) as client:
            resp = await client.post("/webhook/lark", content=make_challenge_body("tok"))
        assert resp.status_code == 200
        assert resp.json() == {"challenge": "tok"}

    @pytest.mark.asyncio
    async def test_encrypted_event_dispatched(self) -> None:
        server = Server(ENCRYPT_KEY)

        def ack(message: Message, call_next: Next) -> Response:
            return {"code": 0, "event_type": message["header"]["event_type"]}

        server.register(ack)
        body = make_encrypted_body(make_event_body())
        async with _client(server) as client:
            resp = await client.post(
                "/webhook/lark",
                content=body,
                headers=make_signed_headers(body, encrypt_key=ENCRYPT_KEY),
            )
        assert resp.status_code == 200
        assert resp.json() == {"code": 0, "event_type": "im.message.receive_v1"}

    @pytest.mark.asyncio
    async def test_custom_path(self) -> None:
        async with _client(Server(), path="/lark/events") as client:
            resp = await client.post("/lark/events", content=make_challenge_body())
        assert resp.json() == {"challenge": "challenge-token"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("headers", "body", "status", "reason"), [
        ({}, "not json", 400, "invalid_payload"),
        ({}, json.dumps(make_event_body()), 401, "missing_headers"),
        ({}, make_encrypted_body(make_event_body()), 500, "missing_secret"),
    ])
    async def test_rejections(
        self, headers: dict[str, str], body: str, status: int, reason: str,
    ) -> None:
        async with _client(Server()) as client:
            resp = await client.post("/webhook/lark", content=body, headers=headers)
        assert resp.status_code == status
        assert resp.json() == {"error": reason}

    @pytest.mark.asyncio
    async def test_expired_timestamp(self) -> None:
        body = json.dumps(make_event_body())
        headers = make_signed_headers(body, timestamp=str(int(time.time()) - 1000))
        async with _client(Server(), tolerance_seconds=10) as client:
            resp = await client.post("/webhook/lark", content=body, headers=headers)
        assert resp.status_code == 401
        assert resp.json() == {"error": "timestamp_expired"}

    @pytest.mark.asyncio
    async def test_oversized_timestamp_is_expired(self) -> None:
        headers = {
            "X-Lark-Request-Timestamp": "1" * 5000,
            "X-Lark-Request-Nonce": "n",
            "X-Lark-Signature": "s",
        }
        async with _client(Server()) as client:
            resp = await client.post("/webhook/lark", content="{}", headers=headers)
        assert resp.status_code == 401
        assert resp.json() == {"error": "timestamp_expired"}

    @pytest.mark.asyncio
    async def test_bad_signature(self) -> None:
        body = json.dumps(make_event_body())
        headers = make_signed_headers(body)
        headers["X-Lark-Signature"] = "f" * 64
        async with _client(Server()) as client:
            resp = await client.post("/webhook/lark", content=body, headers=headers)
        assert resp.status_code == 401
        assert resp.json() == {"error": "invalid_signature"}

    @pytest.mark.asyncio
    async def test_undecryptable_envelope(self) -> None:
        body = json.dumps({"encrypt": "###"})
        headers = make_signed_headers(body, encrypt_key=ENCRYPT_KEY)
        async with _client(Server(ENCRYPT_KEY)) as client:
            resp = await client.post("/webhook/lark", content=body, headers=headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "decryption_failed"}


class TestAppFromEnv:

    @pytest.mark.asyncio
    async def test_env_configuration(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path,
    ) -> None:
        audit_path = tmp_path / "audit.jsonl"
        monkeypatch.setenv("LARK_ENCRYPT_KEY", ENCRYPT_KEY)
        monkeypatch.setenv("LARK_CALLBACK_PATH", "/hooks/lark")
        monkeypatch.setenv("AUDIT_LOG_PATH", str(audit_path))

        app = create_app_from_env()
        body = make_encrypted_body(make_event_body())
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            ok = await client.post(
                "/hooks/lark",
                content=body,
                headers=make_signed_headers(body, encrypt_key=ENCRYPT_KEY),
            )
            rejected = await client.post("/hooks/lark", content=body)

        assert ok.status_code == 200
        assert ok.json()["status"] == "success"
        assert rejected.status_code == 401

        entries = [json.loads(line) for line in audit_path.read_text().splitlines()]
        assert [e["event_type"] for e in entries] == ["callback_accepted", "callback_rejected"]
        assert all(e["source_ip"] == "127.0.0.1" for e in entries)
        assert validate_audit_chain(audit_path).valid

    def test_audit_logger_optional(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AUDIT_LOG_PATH", raising=False)
        assert AuditLogger.from_env() is None
        assert create_app_from_env() is not None
