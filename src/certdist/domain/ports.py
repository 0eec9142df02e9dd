"""
Ports: Protocol interfaces the pipelines depend on.

The pipelines never touch HTTP, age or subprocesses directly; they receive
objects satisfying these protocols. Adapters in certdist.adapters implement
them structurally, and tests substitute MagicMocks.

Server side:  BundlePackager
Client side:  CertificateFetcher → BundleDecryptor → (extract) → CommandRunner
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from certdist.domain.models import CertificateFile, CertificateRequest
from certdist.result import Result


@runtime_checkable
class BundlePackager(Protocol):
    """
    Port: archive certificate files and encrypt them for one recipient.

    Failures are ARCHIVE_ERROR, RECIPIENT_ERROR or ENCRYPTION_ERROR; partial
    ciphertext is never returned.
    """

    def package(self, files: Sequence[CertificateFile], recipient: str) -> Result[bytes]: ...


@runtime_checkable
class CertificateFetcher(Protocol):
    """
    Port: send a CertificateRequest to the server.

    Returns the encrypted bundle on 200, Failure(NOT_MODIFIED) on 304 and
    Failure(EXTERNAL_SERVICE_ERROR) for anything else.
    """

    def fetch(self, request: CertificateRequest) -> Result[bytes]: ...


@runtime_checkable
class BundleDecryptor(Protocol):
    """Port: decrypt a bundle with the client's own identity."""

    def decrypt(self, ciphertext: bytes) -> Result[bytes]: ...


@runtime_checkable
class CommandRunner(Protocol):
    """Port: run post-install commands in order, stopping at the first failure."""

    def run(self, commands: Sequence[str]) -> Result[int]: ...
