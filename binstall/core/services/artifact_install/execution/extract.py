"""
L4 Execution — Archive extraction into the staging directory.

Every member is checked before anything is written: absolute names,
``..`` segments, links leaving the staging directory, and device or
fifo entries reject the whole archive.
"""

from __future__ import annotations

import logging
import lzma
import os
import tarfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath

from binstall.core.errors import CorruptArchiveError, UnsupportedFormatError
from binstall.core.models.artifact import DownloadedArtifact, StagingDirectory

logger = logging.getLogger(__name__)

# suffix → format name; longest suffixes first
ARCHIVE_SUFFIXES = (
    (".tar.gz", "tar.gz"),
    (".tgz", "tar.gz"),
    (".tar.bz2", "tar.bz2"),
    (".tbz2", "tar.bz2"),
    (".tar.xz", "tar.xz"),
    (".txz", "tar.xz"),
    (".tar", "tar"),
    (".zip", "zip"),
)

_TAR_MODES = {
    "tar.gz": "r:gz",
    "tar.bz2": "r:bz2",
    "tar.xz": "r:xz",
    "tar": "r:",
}

SUPPORTED_FORMATS = (*_TAR_MODES, "zip")

STAGING_DIRNAME = "staging"


def detect_archive_format(url_or_name: str) -> str:
    """Archive format implied by a URL or file name suffix.

    Raises:
        UnsupportedFormatError: Suffix is not a known archive type.
    """
    lowered = url_or_name.lower().split("?", 1)[0].split("#", 1)[0]
    for suffix, fmt in ARCHIVE_SUFFIXES:
        if lowered.endswith(suffix):
            return fmt
    raise UnsupportedFormatError(
        f"Cannot tell archive format of '{url_or_name}' "
        f"(supported: {', '.join(SUPPORTED_FORMATS)})"
    )


def extract(
    artifact: DownloadedArtifact,
    archive_format: str,
    staging_root: Path,
) -> StagingDirectory:
    """Unpack the artifact into ``staging_root/staging``.

    The artifact is released afterwards, whether extraction worked
    or not.

    Raises:
        UnsupportedFormatError: ``archive_format`` is not handled.
        CorruptArchiveError: Unreadable archive or unsafe member.
    """
    if archive_format not in SUPPORTED_FORMATS:
        artifact.release()
        raise UnsupportedFormatError(
            f"Unsupported archive format '{archive_format}' "
            f"(supported: {', '.join(SUPPORTED_FORMATS)})"
        )

    dest = staging_root / STAGING_DIRNAME
    dest.mkdir(mode=0o700)
    try:
        if archive_format == "zip":
            entries = _extract_zip(artifact.path, dest)
        else:
            entries = _extract_tar(artifact.path, dest, _TAR_MODES[archive_format])
    finally:
        artifact.release()

    logger.info("Extracted %d entries to %s", len(entries), dest)
    return StagingDirectory(path=dest, entries=entries)


# ── Member checks ───────────────────────────────────────────────


def _safe_member_path(name: str, root: Path) -> Path:
    """Resolve ``name`` under ``root`` or raise CorruptArchiveError."""
    pure = PurePosixPath(name.replace("\\", "/"))
    if pure.is_absolute() or name.startswith(("/", "\\")) or (len(name) > 1 and name[1] == ":"):
        raise CorruptArchiveError(f"Archive entry has an absolute path: {name}")
    if ".." in pure.parts:
        raise CorruptArchiveError(f"Archive entry escapes the staging directory: {name}")
    target = (root / pure).resolve()
    if not _is_within(target, root):
        raise CorruptArchiveError(f"Archive entry escapes the staging directory: {name}")
    return target


def _is_within(path: Path, root: Path) -> bool:
    root = root.resolve()
    return path == root or root in path.parents


def _check_tar_member(member: tarfile.TarInfo, root: Path) -> None:
    target = _safe_member_path(member.name, root)

    if member.ischr() or member.isblk() or member.isfifo() or member.isdev():
        raise CorruptArchiveError(f"Archive entry is a device or fifo: {member.name}")

    if member.issym():
        link = member.linkname
        if os.path.isabs(link):
            raise CorruptArchiveError(f"Symlink {member.name} points to an absolute path: {link}")
        resolved = (target.parent / link).resolve()
        if not _is_within(resolved, root):
            raise CorruptArchiveError(f"Symlink {member.name} points outside the archive: {link}")

    if member.islnk():
        _safe_member_path(member.linkname, root)


# ── Format handlers ─────────────────────────────────────────────


def _extract_tar(path: Path, dest: Path, mode: str) -> list[str]:
    try:
        with tarfile.open(path, mode) as tar:
            members = tar.getmembers()
            for member in members:
                _check_tar_member(member, dest)
            tar.extractall(dest, members=members, filter="data")
    except CorruptArchiveError:
        raise
    except tarfile.FilterError as e:
        raise CorruptArchiveError(f"Unsafe archive entry: {e}") from e
    except tarfile.CompressionError as e:
        raise UnsupportedFormatError(f"Cannot decompress {path.name}: {e}") from e
    except (tarfile.TarError, EOFError, zlib.error, lzma.LZMAError, OSError) as e:
        raise CorruptArchiveError(f"Cannot read archive {path.name}: {e}") from e
    return [m.name for m in members]


def _extract_zip(path: Path, dest: Path) -> list[str]:
    try:
        with zipfile.ZipFile(path) as zf:
            names = zf.namelist()
            for name in names:
                _safe_member_path(name, dest)
            bad = zf.testzip()
            if bad is not None:
                raise CorruptArchiveError(f"CRC check failed for {bad} in {path.name}")
            zf.extractall(dest)
    except CorruptArchiveError:
        raise
    except NotImplementedError as e:
        raise UnsupportedFormatError(f"Cannot decompress {path.name}: {e}") from e
    except (zipfile.BadZipFile, EOFError, zlib.error, OSError) as e:
        raise CorruptArchiveError(f"Cannot read archive {path.name}: {e}") from e
    return names
