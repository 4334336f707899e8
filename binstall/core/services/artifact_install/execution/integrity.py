"""
L4 Execution — Artifact integrity verification.

The only gate between network bytes and an executable on disk.
A mismatch always raises; there is no warn-only mode.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from binstall.core.errors import ChecksumMismatchError
from binstall.core.models.artifact import DownloadedArtifact
from binstall.core.models.manifest import parse_checksum

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


def compute_checksum(path: Path, algorithm: str = "sha256") -> str:
    """Hex digest of a file's full content.

    Args:
        path: File to hash.
        algorithm: hashlib algorithm name (sha256, sha384, sha512).
    """
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def verify(artifact: DownloadedArtifact, expected_checksum: str) -> None:
    """Check the artifact against the manifest checksum.

    The digest is recomputed from the file on disk; the value the
    fetcher observed while streaming is only used for logging.

    Args:
        artifact: Downloaded archive.
        expected_checksum: ``algo:hex`` or bare hex digest.

    Raises:
        ChecksumMismatchError: Digests differ.  The artifact file has
            already been deleted when this is raised.
        ValueError: ``expected_checksum`` is malformed (the manifest
            loader rejects these before a run starts).
    """
    algo, expected = parse_checksum(expected_checksum)
    actual = compute_checksum(artifact.path, algo)

    if artifact.digest and artifact.digest != actual:
        logger.warning(
            "Digest of %s changed between download and verification",
            artifact.path,
        )

    if actual != expected:
        logger.error("Checksum mismatch for %s (%s)", artifact.url, algo)
        artifact.release()
        raise ChecksumMismatchError(artifact.path, expected, actual)

    logger.info("Verified %s %s", algo, actual)


def verify_file(path: Path, expected_checksum: str) -> str:
    """Verify a local file without taking ownership of it.

    Used by ``binstall verify`` for offline checks: the file is never
    deleted.

    Returns:
        The computed digest.

    Raises:
        ChecksumMismatchError: Digests differ.
    """
    algo, expected = parse_checksum(expected_checksum)
    actual = compute_checksum(path, algo)
    if actual != expected:
        raise ChecksumMismatchError(path, expected, actual)
    return actual
