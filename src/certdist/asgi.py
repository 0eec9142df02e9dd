"""
FastAPI application for the certificate server.

Two routes:
  POST /api/v1/certificate-request  → encrypted bundle for an authorized key
  GET  /health                      → "OK"

The request endpoint reads the raw body and decodes it as JSON whatever the
content type, then hands the blocking scan and encryption to the worker
thread pool. Requests share nothing but the read-only configuration; every
request rescans the certificate directories.

Result → HTTP mapping:
  Success                → 200 application/octet-stream (ciphertext)
  NOT_MODIFIED           → 304 (empty body)
  NOT_FOUND              → 404 "Certificate not found"
  AUTHORIZATION_ERROR    → 403 "Public key not authorized"
  VALIDATION_ERROR       → 400 "Invalid request body"
  anything else          → 500 "Internal server error"

Entry point: `certdist server <config.yaml>` (see main.py).
"""

from __future__ import annotations

import secrets
from collections.abc import Sequence
from pathlib import Path

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from structlog.typing import FilteringBoundLogger

from certdist import __version__
from certdist.adapters.age_crypto import AgeBundlePackager
from certdist.domain.models import CERTIFICATE_REQUEST_ENDPOINT, HEALTH_ENDPOINT
from certdist.domain.ports import BundlePackager
from certdist.pipeline import parse_request, serve_certificate
from certdist.result import ErrorCode, FailureDescription

_log = structlog.get_logger()

_FAILURE_RESPONSES: dict[ErrorCode, tuple[int, str]] = {
    ErrorCode.VALIDATION_ERROR: (400, "Invalid request body"),
    ErrorCode.NOT_FOUND: (404, "Certificate not found"),
    ErrorCode.AUTHORIZATION_ERROR: (403, "Public key not authorized"),
}


def _failure_response(error: FailureDescription, log: FilteringBoundLogger) -> Response:
    if error.code is ErrorCode.NOT_MODIFIED:
        log.info("server.not_modified")
        return Response(status_code=304)
    status, body = _FAILURE_RESPONSES.get(error.code, (500, "Internal server error"))
    if status == 500:
        log.error("server.request_failed", code=error.code.value, error=error.detail())
    else:
        log.warning("server.request_rejected", code=error.code.value, error=error.detail())
    return PlainTextResponse(body, status_code=status)


def create_app(
    certificate_directories: Sequence[Path],
    allowed_keys: Sequence[str],
    packager: BundlePackager | None = None,
    log: FilteringBoundLogger | None = None,
) -> FastAPI:
    """
    Build the server application.

    Args:
        certificate_directories: Directories rescanned on every request.
        allowed_keys: age public keys allowed to receive bundles.
        packager: BundlePackager port, AgeBundlePackager by default.
        log: Base logger, the module logger by default.
    """
    directories = tuple(certificate_directories)
    keys = tuple(allowed_keys)
    packager = packager or AgeBundlePackager()
    base_log = log or _log

    app = FastAPI(
        title="certdist",
        description="Encrypted TLS certificate distribution server",
        version=__version__,
    )

    @app.post(CERTIFICATE_REQUEST_ENDPOINT, response_model=None)
    async def certificate_request(request: Request) -> Response:
        log = base_log.bind(
            request_id=secrets.token_hex(4),
            remote_address=request.client.host if request.client else None,
        )
        parsed = parse_request(await request.body())
        if parsed.is_failure():
            return _failure_response(parsed.error(), log)

        body = parsed.value()
        log = log.bind(domain=body.domain)
        log.info("server.request_received")

        result = await run_in_threadpool(
            serve_certificate, body, directories, keys, packager, log=log
        )
        if result.is_failure():
            return _failure_response(result.error(), log)

        ciphertext = result.value()
        log.info("server.certificate_sent", size_bytes=len(ciphertext))
        return Response(content=ciphertext, media_type="application/octet-stream")

    @app.get(HEALTH_ENDPOINT, response_class=PlainTextResponse)
    def health() -> str:
        return "OK"

    return app
