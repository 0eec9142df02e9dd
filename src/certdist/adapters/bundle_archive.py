"""
ZIP bundle adapter: flatten certificate files into an in-memory archive and
write them back out on the receiving side.

Entries are keyed by base name only. Files from different directories that
share a name replace each other, the later one winning. Each entry keeps the
source file's permission bits and mtime so private keys stay private after
extraction.
"""

from __future__ import annotations

import io
import os
import stat
import zipfile
from collections.abc import Sequence
from pathlib import Path

import structlog

from certdist.domain.models import CertificateFile

log = structlog.get_logger()


def build_archive(files: Sequence[CertificateFile]) -> bytes:
    """
    Build a deflate-compressed ZIP of the given files, flattened by base name.

    Raises OSError if a file cannot be read.
    """
    entries: dict[str, tuple[zipfile.ZipInfo, bytes]] = {}
    for certificate_file in files:
        name = certificate_file.path.name
        if name in entries:
            log.debug("archive.entry_replaced", name=name, source=str(certificate_file.path))
        info = zipfile.ZipInfo.from_file(certificate_file.path, arcname=name, strict_timestamps=False)
        entries[name] = (info, certificate_file.path.read_bytes())

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for info, data in entries.values():
            archive.writestr(info, data, compress_type=zipfile.ZIP_DEFLATED)
    return buffer.getvalue()


def extract_archive(data: bytes, destination: Path) -> list[Path]:
    """
    Write every file entry of the archive under destination.

    Parent directories are created as needed, directory entries are skipped
    and existing files are overwritten, even read-only ones. Entries
    resolving outside destination raise ValueError before anything is
    written for them.

    Returns the written paths in archive order.
    """
    destination.mkdir(parents=True, exist_ok=True)
    root = destination.resolve()
    written: list[Path] = []

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            target = destination / info.filename
            if not target.resolve().is_relative_to(root):
                raise ValueError(f"Archive entry escapes destination: {info.filename}")
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                # an earlier install may have left it read-only
                os.chmod(target, stat.S_IMODE(target.stat().st_mode) | stat.S_IWUSR)
            target.write_bytes(archive.read(info))
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                os.chmod(target, mode)
            written.append(target)
    return written
