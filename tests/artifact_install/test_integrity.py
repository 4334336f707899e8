"""
Tests for checksum computation and the verification gate.
"""

import hashlib
from pathlib import Path

import pytest

from binstall.core.errors import ChecksumMismatchError
from binstall.core.models.artifact import DownloadedArtifact
from binstall.core.services.artifact_install.execution.integrity import (
    compute_checksum,
    verify,
    verify_file,
)

DATA = b"release bytes\n" * 1000


@pytest.fixture
def artifact(tmp_path: Path) -> DownloadedArtifact:
    path = tmp_path / "pkg-v0.1.0.tar.gz"
    path.write_bytes(DATA)
    return DownloadedArtifact(path=path, url="https://example/pkg-v0.1.0.tar.gz")


class TestComputeChecksum:

    @pytest.mark.parametrize("algo", ["sha256", "sha384", "sha512"])
    def test_matches_hashlib(self, artifact, algo):
        assert compute_checksum(artifact.path, algo) == hashlib.new(algo, DATA).hexdigest()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty"
        path.write_bytes(b"")
        assert compute_checksum(path) == hashlib.sha256(b"").hexdigest()


class TestVerify:

    def test_match_keeps_file(self, artifact):
        verify(artifact, hashlib.sha256(DATA).hexdigest())
        assert artifact.exists

    def test_prefixed_checksum(self, artifact):
        verify(artifact, "sha512:" + hashlib.sha512(DATA).hexdigest())
        assert artifact.exists

    def test_mismatch_deletes_artifact(self, artifact):
        wrong = hashlib.sha256(b"something else").hexdigest()
        with pytest.raises(ChecksumMismatchError) as exc_info:
            verify(artifact, wrong)
        assert not artifact.exists
        err = exc_info.value
        assert err.expected == wrong
        assert err.actual == hashlib.sha256(DATA).hexdigest()
        assert err.category == "integrity"
        assert err.retryable is False

    def test_single_flipped_byte(self, artifact):
        expected = hashlib.sha256(DATA).hexdigest()
        artifact.path.write_bytes(b"X" + DATA[1:])
        with pytest.raises(ChecksumMismatchError):
            verify(artifact, expected)

    def test_uses_file_not_streamed_digest(self, artifact):
        """A stale digest from the fetcher never overrides the file content."""
        artifact.digest = hashlib.sha256(b"other").hexdigest()
        verify(artifact, hashlib.sha256(DATA).hexdigest())


class TestVerifyFile:

    def test_returns_digest(self, artifact):
        expected = hashlib.sha256(DATA).hexdigest()
        assert verify_file(artifact.path, expected) == expected

    def test_mismatch_keeps_file(self, artifact):
        with pytest.raises(ChecksumMismatchError):
            verify_file(artifact.path, "ab" * 32)
        assert artifact.exists
