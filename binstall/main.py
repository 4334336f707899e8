"""
binstall — CLI entrypoint.

Usage:
    binstall --help
    binstall install stck.yml
    binstall verify stck.yml ./stck-v0.1.0-aarch64-apple-darwin.tar.gz
    binstall manifest check stck.yml
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from binstall import __version__
from binstall.core.errors import FilesystemError, InstallError
from binstall.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    ENV_LOG_LEVEL,
    setup_logging,
)

# Exit code per error category.  Only the CLI maps errors to codes.
EXIT_OK = 0
EXIT_CODES = {
    "manifest": 3,
    "settings": 3,
    "platform": 4,
    "network": 5,
    "integrity": 6,
    "archive": 7,
    "filesystem": 8,
    "validation": 9,
}
EXIT_INTERRUPTED = 130
EXIT_UNEXPECTED = 1

_STAGE_LABELS = {
    "fetching": "⬇️  Fetching",
    "verifying": "🔐 Verifying checksum",
    "extracting": "📦 Extracting",
    "installing": "📁 Installing",
    "validating": "🩺 Running smoke test",
}


def exit_code_for(exc: BaseException) -> int:
    """Process exit code for a pipeline failure."""
    if isinstance(exc, KeyboardInterrupt):
        return EXIT_INTERRUPTED
    if isinstance(exc, InstallError):
        return EXIT_CODES.get(exc.category, EXIT_UNEXPECTED)
    return EXIT_UNEXPECTED


def _fail(exc: InstallError, as_json: bool, extra: dict | None = None) -> None:
    code = exit_code_for(exc)
    if as_json:
        payload = {"ok": False, **(extra or {}), "error": exc.to_dict()}
        click.echo(json.dumps(payload, indent=2))
    else:
        click.secho(f"❌ {exc}", fg="red", err=True)
    sys.exit(code)


@click.group()
@click.version_option(version=__version__, prog_name="binstall")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool) -> None:
    """binstall — fetch, verify and install prebuilt binaries from a manifest."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(ENV_LOG_LEVEL, "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


@cli.command()
@click.argument("manifest_path", metavar="MANIFEST", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--prefix",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Installation prefix (default: $BINSTALL_PREFIX or platform default).",
)
@click.option("--timeout", type=float, default=None, help="Network timeout in seconds.")
@click.option(
    "--archive",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Install from a pre-downloaded archive instead of fetching.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    manifest_path: Path,
    prefix: Path | None,
    timeout: float | None,
    archive: Path | None,
    as_json: bool,
) -> None:
    """Fetch, verify, extract, install and smoke-test a package.

    Examples:

        binstall install stck.yml

        binstall install stck.yml --prefix ~/.local

        binstall install stck.yml --archive ./stck-v0.1.0.tar.gz
    """
    from binstall.core.config.loader import load_manifest
    from binstall.core.config.settings import ConfigError, load_settings
    from binstall.core.errors import SmokeTestError
    from binstall.core.services.artifact_install.orchestration.pipeline import (
        InstallPipeline,
        PipelineState,
    )

    quiet = ctx.obj.get("quiet", False) or as_json

    try:
        settings = load_settings(prefix=prefix, timeout=timeout)
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"ok": False, "error": {"error": str(e), "category": "settings"}}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_CODES["settings"])

    try:
        manifest = load_manifest(manifest_path)
    except InstallError as e:
        _fail(e, as_json)
        return

    def _progress(_old: PipelineState, new: PipelineState) -> None:
        label = _STAGE_LABELS.get(new.value)
        if label and not quiet:
            click.echo(f"   {label}…")

    if not quiet:
        click.secho(f"\n🍺 {manifest.name} {manifest.version}", fg="cyan", bold=True)
        if manifest.description:
            click.echo(f"   {manifest.description}")
        click.echo(f"   → {settings.bin_dir}")

    pipeline = InstallPipeline(settings, local_archive=archive, on_transition=_progress)
    try:
        report = pipeline.run(manifest)
    except KeyboardInterrupt:
        report = pipeline.report
        if report is not None and report.inconsistent:
            click.secho(
                f"⚠️  Interrupted while {report.failed_in.value}; files in "
                f"{settings.bin_dir} may be incomplete. Re-run to repair.",
                fg="yellow", err=True,
            )
        else:
            click.secho("⚠️  Interrupted", fg="yellow", err=True)
        sys.exit(EXIT_INTERRUPTED)
    except InstallError as e:
        report = pipeline.report
        extra = report.to_dict() if report is not None else {}
        extra.pop("error", None)
        if not as_json and report is not None:
            if isinstance(e, SmokeTestError):
                click.secho(
                    f"⚠️  {manifest.name} is installed but failed its smoke test",
                    fg="yellow", err=True,
                )
                if e.output:
                    for line in e.output.strip().splitlines()[:10]:
                        click.echo(f"     │ {line}", err=True)
            elif report.placed:
                click.secho("⚠️  Already placed (left in place):", fg="yellow", err=True)
                for path in report.placed:
                    click.echo(f"     • {path}", err=True)
        _fail(e, as_json, extra)
        return

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    layout = report.layout
    assert layout is not None  # guaranteed once the run is done
    click.secho(f"✅ Installed {manifest.name} {manifest.version}", fg="green", bold=True)
    for path in layout.binaries.values():
        click.echo(f"   • {path}")
    for path in layout.aliases.values():
        click.echo(f"   • {path} → {os.readlink(path)}")
    click.echo()


@cli.command()
@click.argument("manifest_path", metavar="MANIFEST", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def verify(manifest_path: Path, archive: Path, as_json: bool) -> None:
    """Check a downloaded ARCHIVE against the MANIFEST checksum.

    Runs only the integrity check; nothing is fetched or installed,
    and the archive is never modified.
    """
    from binstall.core.config.loader import load_manifest
    from binstall.core.services.artifact_install.execution.integrity import verify_file

    try:
        manifest = load_manifest(manifest_path)
        digest = verify_file(archive, manifest.checksum)
    except InstallError as e:
        _fail(e, as_json, {"archive": str(archive)})
        return
    except OSError as e:
        _fail(FilesystemError(f"Cannot read {archive}: {e}"), as_json, {"archive": str(archive)})
        return

    if as_json:
        click.echo(json.dumps({
            "ok": True,
            "archive": str(archive),
            "algorithm": manifest.checksum_algorithm,
            "digest": digest,
        }, indent=2))
        return

    click.secho(f"✅ {archive.name} matches {manifest.name} {manifest.version}", fg="green")
    click.echo(f"   {manifest.checksum_algorithm}: {digest}")


@cli.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--algorithm", "-a",
    type=click.Choice(["sha256", "sha384", "sha512"]),
    default="sha256",
    show_default=True,
    help="Digest algorithm.",
)
def checksum(archive: Path, algorithm: str) -> None:
    """Print the digest of ARCHIVE, ready to paste into a manifest."""
    from binstall.core.services.artifact_install.execution.integrity import compute_checksum

    try:
        digest = compute_checksum(archive, algorithm)
    except OSError as e:
        _fail(FilesystemError(f"Cannot read {archive}: {e}"), False)
        return
    click.echo(f"{algorithm}:{digest}")


@cli.command("list")
@click.option(
    "--prefix",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Installation prefix (default: $BINSTALL_PREFIX or platform default).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def list_installed(prefix: Path | None, as_json: bool) -> None:
    """List packages installed under the prefix."""
    from binstall.core.config.settings import ConfigError, load_settings
    from binstall.core.persistence.receipts import list_receipts

    try:
        settings = load_settings(prefix=prefix)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_CODES["settings"])

    receipts = list_receipts(settings.prefix)

    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in receipts], indent=2))
        return

    if not receipts:
        click.secho(f"No packages installed under {settings.prefix}", fg="yellow")
        return

    click.secho(f"📦 Installed under {settings.prefix}:", fg="cyan", bold=True)
    for r in receipts:
        names = ", ".join([*r.binaries, *r.aliases])
        click.echo(f"   {r.name:<20} {r.version:<12} {names}")


# ── Register sub-command groups from binstall/ui/cli/ ──────────────

from binstall.ui.cli.manifest import manifest  # noqa: E402

cli.add_command(manifest)


if __name__ == "__main__":
    cli()
