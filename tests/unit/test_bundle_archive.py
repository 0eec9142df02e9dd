"""
Unit tests for the ZIP bundle: building in memory and extracting to disk.
"""

from __future__ import annotations

import io
import os
import stat
import zipfile
from pathlib import Path

import pytest

from certdist.adapters.bundle_archive import build_archive, extract_archive
from certdist.domain.models import CertificateFile, FileKind


def _file(path: Path, content: bytes, mode: int = 0o644) -> CertificateFile:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.chmod(path, mode)
    return CertificateFile(path=path, kind=FileKind.CERTIFICATE)


class TestBuildArchive:
    def test_entries_are_flattened_and_deflated(self, tmp_path: Path) -> None:
        """
        GIVEN files in nested directories
        WHEN the archive is built
        THEN each entry is named by its base name and deflate-compressed.
        """
        files = [
            _file(tmp_path / "a" / "cert.pem", b"CERT"),
            _file(tmp_path / "a" / "deep" / "privkey.pem", b"KEY"),
        ]

        with zipfile.ZipFile(io.BytesIO(build_archive(files))) as archive:
            assert archive.namelist() == ["cert.pem", "privkey.pem"]
            assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in archive.infolist())
            assert archive.read("privkey.pem") == b"KEY"

    def test_same_base_name_later_file_wins(self, tmp_path: Path) -> None:
        """
        GIVEN two directories that both contain cert.pem
        WHEN the archive is built
        THEN it holds a single cert.pem with the second file's content.
        """
        files = [
            _file(tmp_path / "one" / "cert.pem", b"FIRST"),
            _file(tmp_path / "two" / "cert.pem", b"SECOND"),
        ]

        with zipfile.ZipFile(io.BytesIO(build_archive(files))) as archive:
            assert archive.namelist() == ["cert.pem"]
            assert archive.read("cert.pem") == b"SECOND"

    def test_file_mode_is_recorded(self, tmp_path: Path) -> None:
        files = [_file(tmp_path / "privkey.pem", b"KEY", mode=0o600)]
        with zipfile.ZipFile(io.BytesIO(build_archive(files))) as archive:
            assert stat.S_IMODE(archive.getinfo("privkey.pem").external_attr >> 16) == 0o600

    def test_unreadable_file_raises(self, tmp_path: Path) -> None:
        missing = CertificateFile(path=tmp_path / "gone.pem", kind=FileKind.CERTIFICATE)
        with pytest.raises(OSError):
            build_archive([missing])

    def test_empty_input_gives_empty_archive(self) -> None:
        with zipfile.ZipFile(io.BytesIO(build_archive([]))) as archive:
            assert archive.namelist() == []


class TestExtractArchive:
    def test_round_trip_is_byte_identical(self, tmp_path: Path) -> None:
        files = [
            _file(tmp_path / "src" / "cert.pem", b"CERT" * 100),
            _file(tmp_path / "src" / "privkey.pem", b"KEY" * 100, mode=0o600),
        ]
        destination = tmp_path / "dest"

        written = extract_archive(build_archive(files), destination)

        assert [p.name for p in written] == ["cert.pem", "privkey.pem"]
        assert (destination / "cert.pem").read_bytes() == b"CERT" * 100
        assert (destination / "privkey.pem").read_bytes() == b"KEY" * 100
        assert stat.S_IMODE((destination / "privkey.pem").stat().st_mode) == 0o600

    def test_creates_parents_and_skips_directory_entries(self, tmp_path: Path) -> None:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("nested/", b"")
            archive.writestr("nested/chain.pem", b"CHAIN")

        written = extract_archive(buffer.getvalue(), tmp_path / "dest")

        assert written == [tmp_path / "dest" / "nested" / "chain.pem"]
        assert (tmp_path / "dest" / "nested" / "chain.pem").read_bytes() == b"CHAIN"

    def test_overwrites_existing_files(self, tmp_path: Path) -> None:
        destination = tmp_path / "dest"
        destination.mkdir()
        (destination / "cert.pem").write_bytes(b"OLD")

        extract_archive(build_archive([_file(tmp_path / "cert.pem", b"NEW")]), destination)

        assert (destination / "cert.pem").read_bytes() == b"NEW"

    def test_read_only_file_is_replaced_on_renewal(self, tmp_path: Path) -> None:
        """
        GIVEN a bundle whose private key is 0400 on the server, already installed once
        WHEN a renewed bundle with the same read-only key file is extracted
        THEN the new content is written and the file is 0400 again.
        """
        destination = tmp_path / "dest"
        first = build_archive([_file(tmp_path / "v1" / "privkey.pem", b"OLD", mode=0o400)])
        renewed = build_archive([_file(tmp_path / "v2" / "privkey.pem", b"NEW", mode=0o400)])
        extract_archive(first, destination)

        extract_archive(renewed, destination)

        assert (destination / "privkey.pem").read_bytes() == b"NEW"
        assert stat.S_IMODE((destination / "privkey.pem").stat().st_mode) == 0o400

    @pytest.mark.parametrize("name", ["../escape.pem", "a/../../escape.pem"])
    def test_rejects_entries_outside_destination(self, tmp_path: Path, name: str) -> None:
        """
        GIVEN an archive entry whose path climbs out of the destination
        WHEN it is extracted
        THEN ValueError is raised and nothing is written outside.
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr(name, b"EVIL")

        with pytest.raises(ValueError, match="escapes destination"):
            extract_archive(buffer.getvalue(), tmp_path / "dest")
        assert not (tmp_path / "escape.pem").exists()

    def test_invalid_archive_raises(self, tmp_path: Path) -> None:
        with pytest.raises(zipfile.BadZipFile):
            extract_archive(b"not a zip", tmp_path / "dest")
