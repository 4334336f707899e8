"""
Manifest loader — reads a package manifest into a validated model.

This is the primary entry point for loading a manifest.  It reads
YAML, validates against the Pydantic schema, and returns a frozen
``PackageManifest``.  Nothing here touches the network.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from binstall.core.errors import ManifestError
from binstall.core.models.manifest import PackageManifest

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES = (".yml", ".yaml")


def load_manifest(source: Path | str) -> PackageManifest:
    """Load and validate a package manifest.

    Args:
        source: Path to a manifest file, or the manifest's YAML text.

    Returns:
        Validated, immutable PackageManifest.

    Raises:
        ManifestError: If the file is missing, not YAML, or fails
            validation (bad version, URL template, platform tag,
            install actions, or an unset/placeholder checksum).
    """
    raw, origin = _read_source(source)

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {origin}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"Expected a YAML mapping in {origin}, got {type(data).__name__}")

    # The file may wrap everything under a "package" key or be flat
    if isinstance(data.get("package"), dict):
        data = data["package"]

    return parse_manifest(data, origin=origin)


def parse_manifest(data: dict, *, origin: str = "<manifest>") -> PackageManifest:
    """Validate an already-parsed manifest mapping."""
    try:
        manifest = PackageManifest.model_validate(data)
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest {origin}:\n{_format_errors(e)}") from e
    except ValueError as e:
        raise ManifestError(f"Invalid manifest {origin}: {e}") from e

    logger.info(
        "Loaded manifest '%s' %s (%d install actions)",
        manifest.name, manifest.version, len(manifest.install),
    )
    return manifest


def _read_source(source: Path | str) -> tuple[str, str]:
    if isinstance(source, Path) or (
        isinstance(source, str) and "\n" not in source and source.endswith(MANIFEST_SUFFIXES)
    ):
        path = Path(source)
        if not path.is_file():
            raise ManifestError(f"Manifest file not found: {path}")
        logger.debug("Loading manifest from %s", path)
        try:
            return path.read_text(encoding="utf-8"), str(path)
        except OSError as e:
            raise ManifestError(f"Cannot read {path}: {e}") from e
    return source, "<string>"


def _format_errors(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "manifest"
        msg = err.get("msg", "invalid")
        lines.append(f"  {loc}: {msg}")
    return "\n".join(lines)
