"""
L4 Execution — File placement under ``<prefix>/bin``.

Copies primary binaries out of staging and links aliases to the
installed copies.  Each file is swapped in with ``os.replace`` so a
re-run overwrites cleanly; the action list as a whole is not atomic.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from binstall.core.errors import FilesystemError, MissingEntryError
from binstall.core.models.artifact import InstalledLayout, StagingDirectory
from binstall.core.models.manifest import InstallAction, InstallRole

logger = logging.getLogger(__name__)

BINARY_MODE = 0o755


def install(
    staging: StagingDirectory,
    actions: tuple[InstallAction, ...] | list[InstallAction],
    destination_root: Path,
) -> InstalledLayout:
    """Place the staged files and create alias symlinks.

    Args:
        staging: Extracted archive contents.
        actions: Ordered install actions from the manifest.
        destination_root: Installation prefix; files land in ``bin/``.

    Returns:
        InstalledLayout with every placed path.

    Raises:
        MissingEntryError: A source file is absent from the archive,
            or an alias names a binary not installed in this run.
        FilesystemError: The destination cannot be written.
        Both carry ``action`` and the ``placed`` paths so far.
    """
    layout = InstalledLayout(prefix=destination_root.resolve())
    bin_dir = layout.bin_dir
    try:
        bin_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Cannot create {bin_dir}: {e}") from e

    for action in actions:
        if action.role is InstallRole.PRIMARY_BINARY:
            layout.binaries[action.name] = _install_binary(staging, action, bin_dir, layout)
        else:
            layout.aliases[action.name] = _install_alias(action, bin_dir, layout)

    logger.info(
        "Installed %s into %s",
        ", ".join([*layout.binaries, *layout.aliases]), bin_dir,
    )
    return layout


def _locate_source(staging: StagingDirectory, source: str) -> Path | None:
    """Find ``source`` in staging.

    Release archives often wrap everything in one top-level directory
    (``stck-v0.1.0/stck``); when the direct path is missing and staging
    holds exactly one directory, look inside it.
    """
    direct = staging.resolve(source)
    if direct is not None and direct.is_file():
        return direct

    children = [p for p in staging.path.iterdir() if not p.name.startswith(".")]
    if len(children) == 1 and children[0].is_dir() and not children[0].is_symlink():
        nested = StagingDirectory(path=children[0]).resolve(source)
        if nested is not None and nested.is_file():
            return nested
    return None


def _install_binary(
    staging: StagingDirectory,
    action: InstallAction,
    bin_dir: Path,
    layout: InstalledLayout,
) -> Path:
    src = _locate_source(staging, action.source)
    if src is None:
        raise MissingEntryError(
            f"'{action.source}' is not in the archive ({action.describe()})",
            action=action,
            placed=layout.placed(),
        )

    dest = bin_dir / action.name
    if dest.is_dir() and not dest.is_symlink():
        raise FilesystemError(
            f"{dest} is a directory ({action.describe()})",
            action=action,
            placed=layout.placed(),
        )

    tmp_path: str | None = None
    try:
        fd, tmp_path = tempfile.mkstemp(dir=bin_dir, prefix=f".{action.name}.", suffix=".tmp")
        with os.fdopen(fd, "wb") as out, open(src, "rb") as inp:
            shutil.copyfileobj(inp, out)
        os.chmod(tmp_path, BINARY_MODE)
        os.replace(tmp_path, dest)
    except OSError as e:
        if tmp_path:
            Path(tmp_path).unlink(missing_ok=True)
        raise FilesystemError(
            f"Cannot install {dest}: {e} ({action.describe()})",
            action=action,
            placed=layout.placed(),
        ) from e

    logger.debug("Placed %s → %s", src, dest)
    return dest


def _install_alias(action: InstallAction, bin_dir: Path, layout: InstalledLayout) -> Path:
    target = layout.binaries.get(action.source)
    if target is None:
        raise MissingEntryError(
            f"alias '{action.name}' points to '{action.source}', "
            f"which was not installed ({action.describe()})",
            action=action,
            placed=layout.placed(),
        )

    dest = bin_dir / action.name
    if dest.is_dir() and not dest.is_symlink():
        raise FilesystemError(
            f"{dest} is a directory ({action.describe()})",
            action=action,
            placed=layout.placed(),
        )

    # Relative link: survives the prefix being moved and never
    # references staging.
    link_value = os.path.relpath(target, bin_dir)
    tmp_link = bin_dir / f".{action.name}.{os.getpid()}.lnk"
    try:
        tmp_link.unlink(missing_ok=True)
        os.symlink(link_value, tmp_link)
        os.replace(tmp_link, dest)
    except OSError as e:
        tmp_link.unlink(missing_ok=True)
        raise FilesystemError(
            f"Cannot link {dest} → {link_value}: {e} ({action.describe()})",
            action=action,
            placed=layout.placed(),
        ) from e

    logger.debug("Linked %s → %s", dest, link_value)
    return dest
