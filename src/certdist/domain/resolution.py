"""
Domain resolution and freshness: pure functions over scanned directories.

Matching works per directory: a directory whose certificate names the
requested domain hands over every file it holds, because the private key and
chain files next to the certificate carry no domain metadata of their own.

The name test is plain substring containment, not label-aware matching. A
request for "example.com" therefore also matches "notexample.com" and
"sub.example.com". Keep that in mind when several unrelated domains live
under the same certificate roots.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from certdist.domain.models import ZERO_TIME, CertificateFile, DirectoryIndex, is_zero_time
from certdist.result import ErrorCode, Result


def _names_domain(certificate_domain: str, domain: str) -> bool:
    return domain in certificate_domain or f"*.{domain}" in certificate_domain


def directory_matches(index: DirectoryIndex, domain: str) -> bool:
    """True if any file in the directory lists a name containing the domain."""
    return any(
        _names_domain(certificate_domain, domain)
        for certificate_file in index.files
        for certificate_domain in certificate_file.domains
    )


def resolve(indices: Iterable[DirectoryIndex], domain: str) -> list[CertificateFile]:
    """
    Collect all files of every directory that matches the domain.

    Directories keep the given order and files keep their scan order.
    Returns an empty list when nothing matches.
    """
    result: list[CertificateFile] = []
    for index in indices:
        if directory_matches(index, domain):
            result.extend(index.files)
    return result


def bundle_expiration(files: Sequence[CertificateFile]) -> datetime:
    """
    Expiration of the first resolved file, ZERO_TIME if it has none.

    The first file is not necessarily the leaf certificate (a private key may
    sort first); callers accept that approximation.
    """
    if not files or files[0].expiration is None:
        return ZERO_TIME
    return files[0].expiration


def ensure_newer(
    files: list[CertificateFile],
    known_expiration: datetime | None,
) -> Result[list[CertificateFile]]:
    """
    Pass the files through unless the requester's copy is already current.

    A zero/missing known expiration always passes. Otherwise the server's
    bundle must expire strictly after the requester's, or the result is
    Failure(NOT_MODIFIED).
    """
    if known_expiration is None or is_zero_time(known_expiration):
        return Result.success(files)
    if bundle_expiration(files) > known_expiration:
        return Result.success(files)
    return Result.failure(ErrorCode.NOT_MODIFIED, "Requester already holds the latest certificate")
