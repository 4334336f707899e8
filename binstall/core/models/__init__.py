"""
Domain models — Pydantic types and run-scoped records for the installer.

All models are re-exported here for convenient access:

    from binstall.core.models import PackageManifest, InstalledLayout
"""

from binstall.core.models.artifact import (
    DownloadedArtifact,
    InstalledLayout,
    StagingDirectory,
    ValidationResult,
)
from binstall.core.models.manifest import (
    InstallAction,
    InstallRole,
    PackageManifest,
    PlatformTag,
    SmokeTest,
    parse_checksum,
)
from binstall.core.models.receipt import InstallReceipt

__all__ = [
    # artifact.py
    "DownloadedArtifact",
    "InstalledLayout",
    "StagingDirectory",
    "ValidationResult",
    # manifest.py
    "InstallAction",
    "InstallRole",
    "PackageManifest",
    "PlatformTag",
    "SmokeTest",
    "parse_checksum",
    # receipt.py
    "InstallReceipt",
]
