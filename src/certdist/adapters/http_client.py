"""
HTTP adapter: certificate requests to the certdist server via httpx.

Implements the CertificateFetcher port with a sync httpx client.

Status handling:
  200 → Result.success(encrypted bundle)
  304 → Result.failure(NOT_MODIFIED)              client already up to date
  *   → Result.failure(EXTERNAL_SERVICE_ERROR)     body text kept as context

No retries here; the next polling cycle asks again.
Transport errors are captured into Result failures; no exception reaches the
pipeline.
"""

from __future__ import annotations

import httpx
import structlog

from certdist.domain.models import CERTIFICATE_REQUEST_ENDPOINT, CertificateRequest
from certdist.result import ErrorCode, Result

log = structlog.get_logger()


class HttpCertificateFetcher:
    """
    POST CertificateRequests to {server_url}/api/v1/certificate-request.

    `transport` is passed straight to httpx.Client and exists for tests.
    """

    def __init__(
        self,
        server_url: str,
        timeout: int = 60,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = f"{server_url.rstrip('/')}{CERTIFICATE_REQUEST_ENDPOINT}"
        self._timeout = timeout
        self._transport = transport

    def fetch(self, request: CertificateRequest) -> Result[bytes]:
        """
        Send the request and interpret the status code.

        Returns Result[bytes] with the ciphertext on 200,
        Failure(NOT_MODIFIED) on 304, Failure(EXTERNAL_SERVICE_ERROR) otherwise.
        """
        return Result.from_computation(
            lambda: self._do_post(request),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            "Certificate request failed",
        ).flat_map(self._interpret)

    def _do_post(self, request: CertificateRequest) -> httpx.Response:
        """HTTP POST; exceptions caught by from_computation."""
        log.debug("fetcher.request", url=self._url, domain=request.domain)
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            return client.post(self._url, json=request.model_dump(mode="json"))

    @staticmethod
    def _interpret(response: httpx.Response) -> Result[bytes]:
        if response.status_code == httpx.codes.NOT_MODIFIED:
            return Result.failure(ErrorCode.NOT_MODIFIED, "Certificate is up to date")
        if response.status_code == httpx.codes.OK:
            log.debug("fetcher.received", size_bytes=len(response.content))
            return Result.success(response.content)
        detail = response.text.strip()
        return Result.failure(
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Server responded with status {response.status_code}: {detail}",
        )
