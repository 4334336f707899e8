"""
Run-scoped artifacts and install results.

``DownloadedArtifact`` and ``StagingDirectory`` live only inside one
install run and are deleted on every exit path.  ``InstalledLayout``
is the one result that outlives the run.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class DownloadedArtifact:
    """An archive written to the run's scratch directory."""

    path: Path
    url: str
    algorithm: str = "sha256"
    digest: str = ""
    size_bytes: int = 0

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def release(self) -> None:
        """Delete the downloaded file (no-op if already gone)."""
        try:
            self.path.unlink()
            logger.debug("Released artifact %s", self.path)
        except FileNotFoundError:
            pass


@dataclass
class StagingDirectory:
    """Extraction target holding the archive's entries verbatim."""

    path: Path
    entries: list[str] = field(default_factory=list)

    def resolve(self, member: str) -> Path | None:
        """Path of ``member`` inside staging, or None if it would escape."""
        root = self.path.resolve()
        candidate = (root / member).resolve()
        if candidate != root and root not in candidate.parents:
            return None
        return candidate

    def release(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)


@dataclass
class InstalledLayout:
    """Final file placement: role → absolute path."""

    prefix: Path
    binaries: dict[str, Path] = field(default_factory=dict)
    aliases: dict[str, Path] = field(default_factory=dict)

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def primary_binary(self) -> Path | None:
        return next(iter(self.binaries.values()), None)

    def placed(self) -> list[Path]:
        return [*self.binaries.values(), *self.aliases.values()]

    def lookup(self, name: str) -> Path | None:
        """Installed path for a binary or alias name."""
        return self.binaries.get(name) or self.aliases.get(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "prefix": str(self.prefix),
            "binaries": {k: str(v) for k, v in self.binaries.items()},
            "aliases": {k: str(v) for k, v in self.aliases.items()},
        }


@dataclass
class ValidationResult:
    """Outcome of the post-install smoke test."""

    passed: bool
    command: list[str]
    output: str = ""
    exit_code: int | None = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "command": self.command,
            "output": self.output[-2000:],
            "exit_code": self.exit_code,
            "elapsed_ms": self.elapsed_ms,
        }
