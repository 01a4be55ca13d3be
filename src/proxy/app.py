"""FastAPI app hosting the Lark callback endpoint."""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.audit.logger import AuditLogger
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
from src.callback.parser import DEFAULT_TOLERANCE_SECONDS
from src.callback.server import Server

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_PATH = "/webhook/lark"

_STATUS_CODES: dict[type[CallbackError], int] = {
    InvalidPayloadError: 400,
    DecryptionError: 400,
    MissingHeadersError: 401,
    TimestampExpiredError: 401,
    InvalidSignatureError: 401,
    MissingSecretError: 500,
    ConfigurationError: 500,
}


def status_code_for(exc: CallbackError) -> int:
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    audit_logger = AuditLogger.from_env()
    server = Server.from_env(audit_logger=audit_logger)
    tolerance = int(os.environ.get(
        "LARK_CALLBACK_TOLERANCE_SECONDS", str(DEFAULT_TOLERANCE_SECONDS),
    ))
    path = os.environ.get("LARK_CALLBACK_PATH", DEFAULT_CALLBACK_PATH)
    if not server.encrypts:
        logger.warning("LARK_ENCRYPT_KEY not set; encrypted callbacks will be rejected")
    return create_app(server, path=path, tolerance_seconds=tolerance)


def create_app(
    server: Server,
    path: str = DEFAULT_CALLBACK_PATH,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
) -> FastAPI:
    """Create the callback app; register middleware on ``server`` before serving."""
    app = FastAPI(docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(path)
    async def callback(request: Request) -> JSONResponse:
        body = await request.body()
        headers = {key: request.headers.getlist(key) for key in request.headers.keys()}
        try:
            result = server.serve(
                headers,
                body,
                tolerance_seconds,
                source_ip=request.client.host if request.client else None,
            )
        except CallbackError as exc:
            return JSONResponse({"error": exc.reason}, status_code=status_code_for(exc))
        return JSONResponse(result)

    return app
