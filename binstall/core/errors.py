"""
Install error taxonomy.

Every pipeline component raises one of these.  The orchestrator
re-raises them unchanged; only the CLI layer maps ``category`` to an
exit code and a user-facing message.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class InstallError(Exception):
    """Base class for all install pipeline failures."""

    category = "install"
    retryable = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "type": type(self).__name__,
            "category": self.category,
            "retryable": self.retryable,
        }


class ManifestError(InstallError):
    """Malformed or invalid manifest (including an unset checksum)."""

    category = "manifest"


class PlatformMismatchError(InstallError):
    """The running host does not satisfy the manifest's platform constraint."""

    category = "platform"

    def __init__(self, required: list[str], host: list[str]) -> None:
        self.required = list(required)
        self.host = list(host)
        super().__init__(
            f"Package requires platform {', '.join(self.required)} "
            f"but this host is {', '.join(self.host)}"
        )


class NetworkError(InstallError):
    """Connection failure or timeout while fetching the artifact."""

    category = "network"
    retryable = True


class HTTPStatusError(NetworkError):
    """The server answered with a non-success status (or too many redirects)."""

    def __init__(self, url: str, status: int | None, reason: str = "") -> None:
        self.url = url
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else "HTTP error"
        if reason:
            detail += f" {reason}"
        super().__init__(f"{detail} for {url}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        data["url"] = self.url
        return data


class ChecksumMismatchError(InstallError):
    """Downloaded content does not match the manifest checksum."""

    category = "integrity"

    def __init__(self, path: Path | str, expected: str, actual: str) -> None:
        self.path = Path(path)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {self.path.name}\n"
            f"Expected: {expected}\n"
            f"Got:      {actual}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["expected"] = self.expected
        data["actual"] = self.actual
        return data


class ArchiveError(InstallError):
    """Base class for extraction failures."""

    category = "archive"


class UnsupportedFormatError(ArchiveError):
    """The archive format is not one the extractor handles."""


class CorruptArchiveError(ArchiveError):
    """The archive is unreadable or contains unsafe entries."""


class PlacementError(InstallError):
    """Base class for installer failures.

    Installation is not atomic: ``placed`` lists the paths already
    written before ``action`` failed, so the caller can re-run or
    clean up by hand.
    """

    category = "filesystem"

    def __init__(
        self,
        message: str,
        *,
        action: Any = None,
        placed: list[Path] | None = None,
    ) -> None:
        self.action = action
        self.placed = list(placed or [])
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.action is not None:
            data["action"] = self.action.describe()
        data["placed"] = [str(p) for p in self.placed]
        return data


class MissingEntryError(PlacementError):
    """A file named by an install action is absent from the archive."""


class FilesystemError(PlacementError):
    """Reading an archive or writing to the destination failed."""


class SmokeTestError(InstallError):
    """The package is installed but failed its post-install check."""

    category = "validation"

    def __init__(self, message: str, *, output: str = "", exit_code: int | None = None) -> None:
        self.output = output
        self.exit_code = exit_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["output"] = self.output[-2000:]
        data["exit_code"] = self.exit_code
        return data
