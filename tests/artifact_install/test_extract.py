"""
Tests for archive extraction — formats and hostile members.
"""

from __future__ import annotations

import os
import tarfile
from pathlib import Path

import pytest

from binstall.core.errors import CorruptArchiveError, UnsupportedFormatError
from binstall.core.models.artifact import DownloadedArtifact
from binstall.core.services.artifact_install.execution.extract import (
    detect_archive_format,
    extract,
)


def _artifact(path: Path) -> DownloadedArtifact:
    return DownloadedArtifact(path=path, url=f"https://example/{path.name}")


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    d = tmp_path / "scratch"
    d.mkdir()
    return d


def _link(name: str, target: str, kind: bytes = tarfile.SYMTYPE) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = kind
    info.linkname = target
    return info


class TestDetectFormat:

    @pytest.mark.parametrize("url,fmt", [
        ("https://h/stck-v0.1.0-aarch64-apple-darwin.tar.gz", "tar.gz"),
        ("https://h/x.TGZ", "tar.gz"),
        ("https://h/x.tar.bz2", "tar.bz2"),
        ("https://h/x.tar.xz", "tar.xz"),
        ("https://h/x.tar", "tar"),
        ("https://h/x.zip?token=1", "zip"),
    ])
    def test_known(self, url, fmt):
        assert detect_archive_format(url) == fmt

    @pytest.mark.parametrize("url", ["https://h/x.rar", "https://h/stck", "https://h/x.gz"])
    def test_unknown(self, url):
        with pytest.raises(UnsupportedFormatError):
            detect_archive_format(url)


class TestExtractFormats:

    @pytest.mark.parametrize("mode,fmt,suffix", [
        ("w:gz", "tar.gz", ".tar.gz"),
        ("w:bz2", "tar.bz2", ".tar.bz2"),
        ("w:xz", "tar.xz", ".tar.xz"),
        ("w", "tar", ".tar"),
    ])
    def test_tar_variants(self, tmp_path, staging_root, make_tarball, mode, fmt, suffix):
        archive = make_tarball(tmp_path / f"a{suffix}", {"stck": b"bin", "doc/README": b"hi"}, mode=mode)
        staging = extract(_artifact(archive), fmt, staging_root)
        assert (staging.path / "stck").read_bytes() == b"bin"
        assert (staging.path / "doc" / "README").read_bytes() == b"hi"
        assert set(staging.entries) == {"stck", "doc/README"}

    def test_zip(self, tmp_path, staging_root, make_zip):
        archive = make_zip(tmp_path / "a.zip", {"stck-v0.1.0/stck": b"bin"})
        staging = extract(_artifact(archive), "zip", staging_root)
        assert (staging.path / "stck-v0.1.0" / "stck").read_bytes() == b"bin"

    def test_artifact_released(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(tmp_path / "a.tar.gz", {"stck": b"bin"})
        extract(_artifact(archive), "tar.gz", staging_root)
        assert not archive.exists()

    def test_internal_symlink_allowed(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(
            tmp_path / "a.tar.gz", {"bin/stck": b"bin"},
            extra=[_link("stck", "bin/stck")],
        )
        staging = extract(_artifact(archive), "tar.gz", staging_root)
        assert (staging.path / "stck").is_symlink()

    def test_staging_resolve_rejects_escape(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(tmp_path / "a.tar.gz", {"stck": b"bin"})
        staging = extract(_artifact(archive), "tar.gz", staging_root)
        assert staging.resolve("stck") == (staging.path / "stck").resolve()
        assert staging.resolve("../../etc/passwd") is None


class TestHostileArchives:

    def test_parent_traversal(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(tmp_path / "a.tar.gz", {"../../evil": b"x"})
        with pytest.raises(CorruptArchiveError, match="escapes"):
            extract(_artifact(archive), "tar.gz", staging_root)
        assert not (tmp_path / "evil").exists()
        assert not archive.exists()

    def test_absolute_path(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(tmp_path / "a.tar.gz", {"/tmp/evil": b"x"})
        with pytest.raises(CorruptArchiveError, match="absolute"):
            extract(_artifact(archive), "tar.gz", staging_root)

    def test_symlink_escape(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(
            tmp_path / "a.tar.gz", {},
            extra=[_link("stck", "../../../etc/passwd")],
        )
        with pytest.raises(CorruptArchiveError, match="outside"):
            extract(_artifact(archive), "tar.gz", staging_root)

    def test_absolute_symlink(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(tmp_path / "a.tar.gz", {}, extra=[_link("stck", "/bin/sh")])
        with pytest.raises(CorruptArchiveError, match="absolute"):
            extract(_artifact(archive), "tar.gz", staging_root)

    def test_hardlink_escape(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(
            tmp_path / "a.tar.gz", {},
            extra=[_link("stck", "../outside", kind=tarfile.LNKTYPE)],
        )
        with pytest.raises(CorruptArchiveError):
            extract(_artifact(archive), "tar.gz", staging_root)

    def test_device_entry(self, tmp_path, staging_root, make_tarball):
        dev = tarfile.TarInfo("null")
        dev.type = tarfile.CHRTYPE
        archive = make_tarball(tmp_path / "a.tar.gz", {}, extra=[dev])
        with pytest.raises(CorruptArchiveError, match="device"):
            extract(_artifact(archive), "tar.gz", staging_root)

    def test_zip_traversal(self, tmp_path, staging_root, make_zip):
        archive = make_zip(tmp_path / "a.zip", {"../evil": b"x"})
        with pytest.raises(CorruptArchiveError):
            extract(_artifact(archive), "zip", staging_root)
        assert not (tmp_path / "evil").exists()

    def test_nothing_written_on_rejection(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(tmp_path / "a.tar.gz", {"ok": b"x", "../evil": b"x"})
        with pytest.raises(CorruptArchiveError):
            extract(_artifact(archive), "tar.gz", staging_root)
        assert list((staging_root / "staging").iterdir()) == []


class TestBrokenArchives:

    def test_garbage_gzip(self, tmp_path, staging_root):
        path = tmp_path / "a.tar.gz"
        path.write_bytes(b"this is not gzip data")
        with pytest.raises(CorruptArchiveError):
            extract(_artifact(path), "tar.gz", staging_root)
        assert not path.exists()

    def test_truncated_tarball(self, tmp_path, staging_root, make_tarball):
        archive = make_tarball(tmp_path / "a.tar.gz", {"stck": os.urandom(100_000)})
        archive.write_bytes(archive.read_bytes()[:200])
        with pytest.raises(CorruptArchiveError):
            extract(_artifact(archive), "tar.gz", staging_root)

    def test_garbage_zip(self, tmp_path, staging_root):
        path = tmp_path / "a.zip"
        path.write_bytes(b"PK not really")
        with pytest.raises(CorruptArchiveError):
            extract(_artifact(path), "zip", staging_root)

    def test_unsupported_format(self, tmp_path, staging_root):
        path = tmp_path / "a.rar"
        path.write_bytes(b"Rar!")
        with pytest.raises(UnsupportedFormatError):
            extract(_artifact(path), "rar", staging_root)
        assert not path.exists()
