"""
Shared test fixtures and configuration.

Fixture archives are built at test time: a small ``stck`` shell script
packed the way a release tarball would be.
"""

from __future__ import annotations

import hashlib
import io
import tarfile
import textwrap
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from binstall.core.config.settings import InstallerSettings

STCK_SCRIPT = textwrap.dedent("""\
    #!/bin/sh
    echo "stck - CLI for stacked GitHub pull request workflows"
    echo "Usage: stck [OPTIONS] <COMMAND>"
""").encode()


def _sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def make_tarball() -> Callable[..., Path]:
    """Build a tar archive from ``{name: bytes}`` (mode 0755 for files).

    Extra raw members can be passed as ``TarInfo`` objects for
    crafting hostile archives.
    """

    def _make(
        path: Path,
        files: dict[str, bytes],
        *,
        mode: str = "w:gz",
        extra: list[tarfile.TarInfo] | None = None,
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(path, mode) as tar:
            for name, data in files.items():
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o755
                tar.addfile(info, io.BytesIO(data))
            for info in extra or []:
                tar.addfile(info)
        return path

    return _make


@pytest.fixture
def make_zip() -> Callable[[Path, dict[str, bytes]], Path]:
    def _make(path: Path, files: dict[str, bytes]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, "w") as zf:
            for name, data in files.items():
                zf.writestr(name, data)
        return path

    return _make


@pytest.fixture
def dist_dir(tmp_path: Path) -> Path:
    """Directory standing in for the release host (served via file://)."""
    d = tmp_path / "dist"
    d.mkdir()
    return d


@pytest.fixture
def stck_archive(dist_dir: Path, make_tarball) -> Path:
    """``pkg-v0.1.0.tar.gz`` containing an executable ``stck``."""
    return make_tarball(dist_dir / "pkg-v0.1.0.tar.gz", {"stck": STCK_SCRIPT})


@pytest.fixture
def stck_checksum(stck_archive: Path) -> str:
    return _sha256(stck_archive)


@pytest.fixture
def write_manifest(tmp_path: Path, dist_dir: Path) -> Callable[..., Path]:
    """Write a manifest YAML pointing at ``dist_dir`` and return its path."""

    def _write(
        checksum: str,
        *,
        name: str = "stck",
        version: str = "0.1.0",
        url: str | None = None,
        platform: str = "",
        install: str | None = None,
        test_command: str = "stck --help",
        expect: str = "stck",
        filename: str = "stck.yml",
    ) -> Path:
        url = url or f"{dist_dir.as_uri()}/pkg-v{{version}}.tar.gz"
        install = install or textwrap.dedent("""\
              - primary-binary: stck
              - symlink-alias: git-stck
        """)
        body = textwrap.dedent(f"""\
            name: {name}
            description: CLI for stacked GitHub pull request workflows
            homepage: https://github.com/brdv/stck
            version: "{version}"
            url: "{url}"
            checksum: "{checksum}"
            test:
              command: "{test_command}"
              expect: "{expect}"
        """)
        if platform:
            body += f"platform: {platform}\n"
        body += "install:\n" + textwrap.indent(textwrap.dedent(install), "  ")
        path = tmp_path / filename
        path.write_text(body)
        return path

    return _write


@pytest.fixture
def prefix(tmp_path: Path) -> Path:
    return tmp_path / "prefix"


@pytest.fixture
def scratch_parent(tmp_path: Path) -> Path:
    """Parent for per-run scratch directories; empty after every run."""
    d = tmp_path / "scratch"
    d.mkdir()
    return d


@pytest.fixture
def settings(prefix: Path, scratch_parent: Path) -> InstallerSettings:
    return InstallerSettings(prefix=prefix, tmpdir=scratch_parent, timeout=5, test_timeout=10)


@pytest.fixture(autouse=True)
def _no_proxy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep test traffic to 127.0.0.1 off any proxy from the environment."""
    for var in ("http_proxy", "https_proxy", "all_proxy", "HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY"):
        monkeypatch.delenv(var, raising=False)
    for var in ("BINSTALL_PREFIX", "BINSTALL_TIMEOUT", "BINSTALL_TEST_TIMEOUT", "BINSTALL_TMPDIR"):
        monkeypatch.delenv(var, raising=False)
