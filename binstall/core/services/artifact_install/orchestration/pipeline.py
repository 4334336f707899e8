"""
L5 Orchestration — The install pipeline state machine.

    idle → fetching → verifying → extracting → installing → validating → done
                 └──────────┴───────────┴────────────┴────────────┴──→ failed

Stages run sequentially.  Any error moves the run to ``failed``, the
scratch directory (download + staging) is removed, and the original
exception propagates unchanged.  Nothing is retried.
"""

from __future__ import annotations

import concurrent.futures
import logging
import shutil
import tempfile
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any

from binstall.core.config.loader import load_manifest
from binstall.core.config.settings import InstallerSettings, load_settings
from binstall.core.errors import InstallError, PlacementError
from binstall.core.models.artifact import (
    DownloadedArtifact,
    InstalledLayout,
    StagingDirectory,
    ValidationResult,
)
from binstall.core.models.manifest import PackageManifest
from binstall.core.models.receipt import InstallReceipt
from binstall.core.persistence.receipts import save_receipt
from binstall.core.services.artifact_install.execution import extract as _extract
from binstall.core.services.artifact_install.execution import fetch as _fetch
from binstall.core.services.artifact_install.execution import installer as _installer
from binstall.core.services.artifact_install.execution import integrity as _integrity
from binstall.core.services.artifact_install.execution import smoke_test as _smoke_test
from binstall.core.services.artifact_install.execution.locks import destination_lock

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    VERIFYING = "verifying"
    EXTRACTING = "extracting"
    INSTALLING = "installing"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


_NEXT = {
    PipelineState.IDLE: PipelineState.FETCHING,
    PipelineState.FETCHING: PipelineState.VERIFYING,
    PipelineState.VERIFYING: PipelineState.EXTRACTING,
    PipelineState.EXTRACTING: PipelineState.INSTALLING,
    PipelineState.INSTALLING: PipelineState.VALIDATING,
    PipelineState.VALIDATING: PipelineState.DONE,
}

# States in which files under <prefix>/bin may already have changed
_MUTATING = (PipelineState.INSTALLING, PipelineState.VALIDATING)

Fetcher = Callable[[PackageManifest, Path], DownloadedArtifact]
Verifier = Callable[[DownloadedArtifact, str], None]
Extractor = Callable[[DownloadedArtifact, str, Path], StagingDirectory]
Installer = Callable[..., InstalledLayout]
Validator = Callable[[InstalledLayout, str, str], ValidationResult]
TransitionCallback = Callable[[PipelineState, PipelineState], None]


@dataclass
class InstallReport:
    """What a run did, for the CLI to render.  Not persisted."""

    name: str
    version: str
    url: str
    state: PipelineState = PipelineState.IDLE
    failed_in: PipelineState | None = None
    layout: InstalledLayout | None = None
    validation: ValidationResult | None = None
    error: BaseException | None = None
    inconsistent: bool = False
    placed: list[Path] = field(default_factory=list)
    receipt_path: Path | None = None
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def duration_ms(self) -> int:
        end = self.ended_at if self.ended_at is not None else time.time()
        return int((end - self.started_at) * 1000)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ok": self.ok,
            "name": self.name,
            "version": self.version,
            "url": self.url,
            "state": self.state.value,
            "duration_ms": self.duration_ms,
        }
        if self.layout is not None:
            data["layout"] = self.layout.to_dict()
        if self.validation is not None:
            data["validation"] = self.validation.to_dict()
        if self.failed_in is not None:
            data["failed_in"] = self.failed_in.value
        if self.error is not None:
            if isinstance(self.error, InstallError):
                data["error"] = self.error.to_dict()
            else:
                data["error"] = {"error": str(self.error) or type(self.error).__name__,
                                 "type": type(self.error).__name__}
        if self.placed:
            data["placed"] = [str(p) for p in self.placed]
        if self.inconsistent:
            data["inconsistent"] = True
        if self.receipt_path is not None:
            data["receipt"] = str(self.receipt_path)
        return data


class InstallPipeline:
    """One install run of one manifest.

    Stage callables default to the real implementations; pass
    replacements to test or to swap transports.  An instance runs
    once: create a new pipeline to retry.
    """

    def __init__(
        self,
        settings: InstallerSettings | None = None,
        *,
        fetcher: Fetcher | None = None,
        verifier: Verifier | None = None,
        extractor: Extractor | None = None,
        installer: Installer | None = None,
        validator: Validator | None = None,
        local_archive: Path | None = None,
        on_transition: TransitionCallback | None = None,
        write_receipt: bool = True,
    ) -> None:
        self.settings = settings or load_settings()
        if fetcher is None:
            if local_archive is not None:
                fetcher = _local_fetcher(Path(local_archive))
            else:
                fetcher = partial(_fetch.fetch, timeout=self.settings.timeout)
        self._fetcher = fetcher
        self._verifier = verifier or _integrity.verify
        self._extractor = extractor or _extract.extract
        self._installer = installer or _installer.install
        self._validator = validator or partial(
            _smoke_test.validate, timeout=self.settings.test_timeout,
        )
        self._on_transition = on_transition
        self._write_receipt = write_receipt
        self._state = PipelineState.IDLE
        self.report: InstallReport | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    # ── State machine ───────────────────────────────────────────

    def _advance(self) -> None:
        self._move_to(_NEXT[self._state])

    def _move_to(self, new: PipelineState) -> None:
        old = self._state
        self._state = new
        if self.report is not None:
            self.report.state = new
        logger.info("%s → %s", old.value, new.value)
        if self._on_transition is not None:
            self._on_transition(old, new)

    # ── Run ─────────────────────────────────────────────────────

    def run(self, manifest: PackageManifest) -> InstallReport:
        """Install ``manifest`` into ``settings.prefix``.

        Returns:
            The report of a ``done`` run.

        Raises:
            InstallError: Whatever stage failed, unchanged.  The
                partial report stays available as ``self.report``.
            KeyboardInterrupt: After cleanup, unchanged.
        """
        if self._state is not PipelineState.IDLE:
            raise RuntimeError("InstallPipeline instances run once; create a new one to retry")

        report = InstallReport(
            name=manifest.name,
            version=manifest.version,
            url=manifest.resolved_url(),
        )
        self.report = report
        prefix = self.settings.prefix.expanduser()
        scratch: Path | None = None

        try:
            self._advance()  # fetching
            scratch = Path(tempfile.mkdtemp(
                prefix=f"binstall-{manifest.name}-",
                dir=str(self.settings.tmpdir) if self.settings.tmpdir else None,
            ))
            artifact = self._fetcher(manifest, scratch)

            self._advance()  # verifying
            self._verifier(artifact, manifest.checksum)

            self._advance()  # extracting
            archive_format = _extract.detect_archive_format(manifest.resolved_url())
            staging = self._extractor(artifact, archive_format, scratch)

            with destination_lock(prefix / "bin"):
                self._advance()  # installing
                report.layout = self._installer(staging, manifest.install, prefix)

                self._advance()  # validating
                report.validation = self._validator(
                    report.layout, manifest.test.command, manifest.test.expect,
                )

                if self._write_receipt:
                    report.receipt_path = self._save_receipt(manifest, report.layout)

            self._advance()  # done
        except BaseException as exc:
            self._fail(report, exc)
            raise
        finally:
            report.ended_at = time.time()
            if scratch is not None:
                _remove_scratch(scratch)

        logger.info(
            "Installed %s %s in %dms", manifest.name, manifest.version, report.duration_ms,
        )
        return report

    def _fail(self, report: InstallReport, exc: BaseException) -> None:
        failed_in = self._state
        report.failed_in = failed_in
        report.error = exc

        if isinstance(exc, PlacementError):
            report.placed = list(exc.placed)
        elif report.layout is not None:
            report.placed = report.layout.placed()

        if failed_in in _MUTATING and not isinstance(exc, InstallError):
            report.inconsistent = True
            logger.warning(
                "Install of %s interrupted while %s; files under %s may be "
                "incomplete. Re-run the install to repair.",
                report.name, failed_in.value, self.settings.prefix / "bin",
            )
        elif isinstance(exc, PlacementError) and exc.placed:
            report.inconsistent = True
            logger.warning(
                "Install of %s failed after placing %s",
                report.name, ", ".join(str(p) for p in exc.placed),
            )

        logger.error("Install of %s failed while %s: %s", report.name, failed_in.value, exc)
        self._move_to(PipelineState.FAILED)

    def _save_receipt(self, manifest: PackageManifest, layout: InstalledLayout) -> Path | None:
        receipt = InstallReceipt(
            name=manifest.name,
            version=manifest.version,
            url=manifest.resolved_url(),
            checksum=manifest.checksum,
            prefix=str(layout.prefix),
            binaries={k: str(v) for k, v in layout.binaries.items()},
            aliases={k: str(v) for k, v in layout.aliases.items()},
        )
        try:
            return save_receipt(receipt, layout.prefix)
        except OSError as e:
            logger.warning("Installed %s but could not write its receipt: %s", manifest.name, e)
            return None


def _local_fetcher(archive: Path) -> Fetcher:
    def _adopt(manifest: PackageManifest, scratch_dir: Path) -> DownloadedArtifact:
        return _fetch.adopt_local_archive(manifest, archive, scratch_dir)
    return _adopt


def _remove_scratch(scratch: Path) -> None:
    try:
        shutil.rmtree(scratch)
        logger.debug("Removed scratch directory %s", scratch)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove scratch directory %s: %s", scratch, e)


# ── Entry points ────────────────────────────────────────────────


def install_package(
    source: Path | str | PackageManifest,
    settings: InstallerSettings | None = None,
    **pipeline_kwargs: Any,
) -> InstallReport:
    """Load a manifest (if needed) and run a fresh pipeline on it.

    Raises:
        ManifestError: Before anything else runs, when the manifest
            is invalid; the fetcher is never called.
        InstallError: From the failing stage.
    """
    manifest = source if isinstance(source, PackageManifest) else load_manifest(source)
    pipeline = InstallPipeline(settings, **pipeline_kwargs)
    return pipeline.run(manifest)


def install_many(
    manifests: Iterable[PackageManifest],
    settings: InstallerSettings | None = None,
    *,
    max_workers: int = 4,
    **pipeline_kwargs: Any,
) -> list[InstallReport]:
    """Install independent packages concurrently.

    Each package gets its own pipeline and scratch directory; writes
    to a shared ``bin`` directory are serialized by the destination
    lock.  Failures do not stop the other installs: every package's
    report is returned, failed ones carrying ``error``.
    """
    settings = settings or load_settings()
    manifests = list(manifests)
    if not manifests:
        return []

    def _run_one(manifest: PackageManifest) -> InstallReport:
        pipeline = InstallPipeline(settings, **pipeline_kwargs)
        try:
            return pipeline.run(manifest)
        except InstallError as exc:
            logger.warning("%s: %s", manifest.name, exc)
            if pipeline.report is None:
                raise
            return pipeline.report

    with concurrent.futures.ThreadPoolExecutor(
        max_workers=min(max_workers, len(manifests)),
    ) as pool:
        return list(pool.map(_run_one, manifests))
