"""
Pipelines: the server and client halves of the transfer protocol.

Domain orchestration only. Scanning is local disk reads; everything else
(encryption, HTTP, shell commands) arrives through ports.

Server, per request:

  parse JSON body                     invalid      → VALIDATION_ERROR
  scan certificate directories
    → resolve(domain)                 empty        → NOT_FOUND
      → ensure_newer(expiration)      not newer    → NOT_MODIFIED
        → authorize(public key)       not listed   → AUTHORIZATION_ERROR
          → packager.package()        any failure  → ARCHIVE/RECIPIENT/ENCRYPTION_ERROR

Freshness is checked before authorization, so an up-to-date requester gets
304 without its key being looked at.

Client, per configured domain:

  local expiration (scan destination directory)
    → fetcher.fetch()                 304 → UP_TO_DATE
      → decryptor.decrypt()
        → extract_archive(destination)
          → runner.run(renew commands)  → INSTALLED

Each stage returns Result[T]; failures short-circuit through flat_map.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from pathlib import Path

import structlog
from structlog.typing import FilteringBoundLogger

from certdist.adapters.bundle_archive import extract_archive
from certdist.adapters.pem_scanner import log_index, scan_directories
from certdist.domain.authorization import authorize
from certdist.domain.models import (
    ZERO_TIME,
    CertificateFile,
    CertificateRequest,
    CertificateTarget,
    CycleSummary,
    SyncOutcome,
)
from certdist.domain.ports import BundleDecryptor, BundlePackager, CertificateFetcher, CommandRunner
from certdist.domain.resolution import bundle_expiration, ensure_newer, resolve
from certdist.result import ErrorCode, Result

_log = structlog.get_logger()


# ─────────────────────── Server ───────────────────────


def parse_request(raw: bytes) -> Result[CertificateRequest]:
    """Decode a request body as JSON, whatever content type the client declared."""
    return Result.from_computation(
        lambda: CertificateRequest.model_validate_json(raw),
        ErrorCode.VALIDATION_ERROR,
        "Invalid request body",
    )


def serve_certificate(
    request: CertificateRequest,
    certificate_directories: Sequence[Path],
    allowed_keys: Sequence[str],
    packager: BundlePackager,
    log: FilteringBoundLogger | None = None,
) -> Result[bytes]:
    """
    Answer one certificate request.

    Returns Result[bytes] with the encrypted bundle, or the failure of the
    first stage that stopped the request (see module docstring).
    """
    log = log or _log
    indices = scan_directories(certificate_directories, log=log)
    log_index(indices, log=log)

    return (
        Result.success(resolve(indices, request.domain))
        .ensure(bool, ErrorCode.NOT_FOUND, f"Certificate not found for domain {request.domain}")
        .flat_map(lambda files: ensure_newer(files, request.expiration))
        .flat_map(lambda files: _authorized(files, request.age_public_key, allowed_keys))
        .flat_map(lambda files: packager.package(files, request.age_public_key))
    )


def _authorized(
    files: list[CertificateFile],
    public_key: str,
    allowed_keys: Sequence[str],
) -> Result[list[CertificateFile]]:
    return authorize(public_key, allowed_keys).map(lambda _: files)


# ─────────────────────── Client ───────────────────────


def local_expiration(
    target: CertificateTarget,
    log: FilteringBoundLogger | None = None,
) -> datetime:
    """
    Expiration of the certificate already installed for the target.

    ZERO_TIME when the destination directory does not exist or holds nothing
    matching the domain.
    """
    log = log or _log
    if not target.directory.exists():
        return ZERO_TIME
    log.info("client.checking_existing", directory=str(target.directory))
    files = resolve(scan_directories([target.directory], log=log), target.domain)
    if not files:
        return ZERO_TIME
    expiration = bundle_expiration(files)
    log.info("client.existing_certificate", expiration=expiration.isoformat())
    return expiration


def sync_certificate(
    target: CertificateTarget,
    public_key: str,
    fetcher: CertificateFetcher,
    decryptor: BundleDecryptor,
    runner: CommandRunner,
    log: FilteringBoundLogger | None = None,
) -> Result[SyncOutcome]:
    """
    Bring one domain's certificate files up to date.

    Returns Success(UP_TO_DATE) on 304, Success(INSTALLED) after extraction
    and renew commands succeeded, or the first failure.
    """
    log = (log or _log).bind(domain=target.domain)
    request = CertificateRequest(
        domain=target.domain,
        age_public_key=public_key,
        expiration=local_expiration(target, log=log),
    )

    return (
        fetcher.fetch(request)
        .flat_map(decryptor.decrypt)
        .flat_map(lambda archive: _install(archive, target.directory))
        .peek(lambda written: log.info(
            "client.extracted",
            directory=str(target.directory),
            files=[path.name for path in written],
        ))
        .flat_map(lambda _: runner.run(target.renew_commands))
        .map(lambda _: SyncOutcome.INSTALLED)
        .recover_code(ErrorCode.NOT_MODIFIED, lambda _: SyncOutcome.UP_TO_DATE)
    )


def _install(archive: bytes, destination: Path) -> Result[list[Path]]:
    return Result.from_computation(
        lambda: extract_archive(archive, destination),
        ErrorCode.ARCHIVE_ERROR,
        f"Failed to extract certificate archive into {destination}",
    )


def run_sync_cycle(
    targets: Iterable[CertificateTarget],
    sync: Callable[[CertificateTarget], Result[SyncOutcome]],
    log: FilteringBoundLogger | None = None,
) -> Result[CycleSummary]:
    """
    Sync every target, strictly one after another.

    A failing domain is logged and counted; it never stops the others.
    """
    log = log or _log
    installed = up_to_date = failed = 0

    for target in targets:
        log.info("client.requesting", domain=target.domain)
        result = sync(target)
        if result.is_failure():
            failed += 1
            log.error("client.sync_failed", domain=target.domain, error=result.error().detail())
        elif result.value() is SyncOutcome.UP_TO_DATE:
            up_to_date += 1
            log.info("client.up_to_date", domain=target.domain)
        else:
            installed += 1
            log.info("client.installed", domain=target.domain)

    return Result.success(CycleSummary(installed=installed, up_to_date=up_to_date, failed=failed))
