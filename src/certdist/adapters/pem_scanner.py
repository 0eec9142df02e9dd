"""
PEM scanner adapter: classify certificate material found on disk.

Uses:
  - asn1crypto: PEM unarmoring (block type + DER payload of the first block)
  - cryptography (PyCA): X.509 parsing for SAN DNS names and NotAfter

Pipeline per file:
  raw bytes
    → asn1crypto: pem.unarmor() → (type, headers, der)    first block only
    → "CERTIFICATE": cryptography x509.load_der_x509_certificate()
    → "...PRIVATE KEY": classified, nothing extracted
    → anything else: skipped

Only the first PEM block counts: fullchain.pem has the chain appended after
the leaf certificate and the chain is of no interest here.

Nothing in a scan is fatal. An unreadable directory or an unparseable file is
logged as a warning and skipped.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import structlog
from asn1crypto import pem
from cryptography import x509
from cryptography.x509.extensions import ExtensionNotFound
from structlog.typing import FilteringBoundLogger

from certdist.domain.models import CertificateFile, DirectoryIndex, FileKind
from certdist.result import ErrorCode, Result

_log = structlog.get_logger()


def _extract_dns_names(cert: x509.Certificate) -> tuple[str, ...]:
    """SAN DNS names, or an empty tuple if the extension is absent."""
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except ExtensionNotFound:
        return ()
    return tuple(ext.value.get_values_for_type(x509.DNSName))


def _do_parse(path: Path) -> CertificateFile:
    """Internal parse; may raise (caught by from_computation)."""
    data = path.read_bytes()
    block_type, _headers, der_bytes = pem.unarmor(data)

    if block_type == "CERTIFICATE":
        cert = x509.load_der_x509_certificate(der_bytes)
        return CertificateFile(
            path=path,
            kind=FileKind.CERTIFICATE,
            domains=_extract_dns_names(cert),
            expiration=cert.not_valid_after_utc,
        )
    if "PRIVATE KEY" in block_type:
        return CertificateFile(path=path, kind=FileKind.PRIVATE_KEY)
    raise ValueError(f"Unhandled PEM block type: {block_type}")


def parse_certificate_file(path: Path) -> Result[CertificateFile]:
    """
    Parse the first PEM block of a file into a CertificateFile.

    Returns Failure(PARSE_ERROR) for unreadable files, non-PEM content,
    unsupported block types and malformed certificates.
    """
    return Result.from_computation(
        lambda: _do_parse(path),
        ErrorCode.PARSE_ERROR,
        f"Failed to parse certificate file {path.name}",
    )


def scan_directory(directory: Path, log: FilteringBoundLogger | None = None) -> Result[DirectoryIndex]:
    """
    Index the files of one directory (no recursion, sorted by name).

    Returns Failure(PARSE_ERROR) only when the directory itself cannot be
    listed; bad files inside it are skipped.
    """
    log = log or _log
    listing = Result.from_computation(
        lambda: sorted(directory.iterdir()),
        ErrorCode.PARSE_ERROR,
        f"Failed to read certificate directory {directory}",
    )
    return listing.map(lambda entries: DirectoryIndex(path=directory, files=_parse_entries(entries, log)))


def _parse_entries(entries: Iterable[Path], log: FilteringBoundLogger) -> tuple[CertificateFile, ...]:
    files: list[CertificateFile] = []
    for entry in entries:
        if entry.is_dir():
            continue
        parse_certificate_file(entry).either(
            on_success=files.append,
            on_failure=lambda err, entry=entry: log.warning(
                "scanner.file_skipped", file=str(entry), error=err.detail()
            ),
        )
    return tuple(files)


def scan_directories(
    directories: Iterable[Path | str],
    log: FilteringBoundLogger | None = None,
) -> list[DirectoryIndex]:
    """
    Scan every directory and return one DirectoryIndex per readable directory.

    Unreadable directories are left out of the result with a warning.
    """
    log = log or _log
    indices: list[DirectoryIndex] = []
    for directory in directories:
        path = Path(directory)
        log.debug("scanner.directory", directory=str(path))
        scan_directory(path, log).either(
            on_success=indices.append,
            on_failure=lambda err, path=path: log.warning(
                "scanner.directory_skipped", directory=str(path), error=err.detail()
            ),
        )
    return indices


def log_index(indices: Iterable[DirectoryIndex], log: FilteringBoundLogger | None = None) -> None:
    """Emit one debug line per indexed file."""
    log = log or _log
    for index in indices:
        for certificate_file in index.files:
            log.debug(
                "scanner.file",
                directory=str(index.path),
                file=certificate_file.path.name,
                kind=certificate_file.kind.value,
                domains=", ".join(certificate_file.domains),
                expiration=(
                    certificate_file.expiration.isoformat() if certificate_file.expiration else None
                ),
            )
