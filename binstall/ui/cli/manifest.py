"""
CLI commands for manifest inspection.

Thin wrappers over ``binstall.core.config.loader``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click


@click.group()
def manifest() -> None:
    """Manifest — validate and inspect package manifests."""


@manifest.command("check")
@click.argument("manifest_path", metavar="MANIFEST", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def check(manifest_path: Path, as_json: bool) -> None:
    """Validate MANIFEST without fetching anything."""
    from binstall.core.config.loader import load_manifest
    from binstall.core.errors import ManifestError, PlatformMismatchError
    from binstall.core.services.artifact_install.domain.platform import check_platform, host_tags
    from binstall.main import EXIT_CODES

    try:
        pkg = load_manifest(manifest_path)
    except ManifestError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "error": e.to_dict()}, indent=2))
        else:
            click.secho("❌ Manifest errors:", fg="red", bold=True)
            click.echo(f"   {e}")
        sys.exit(EXIT_CODES["manifest"])

    host = host_tags()
    platform_ok = True
    try:
        check_platform(pkg.platform, host)
    except PlatformMismatchError:
        platform_ok = False

    if as_json:
        click.echo(json.dumps({
            "valid": True,
            "manifest": pkg.model_dump(mode="json"),
            "url": pkg.resolved_url(),
            "host": [t.value for t in host],
            "installable_here": platform_ok,
        }, indent=2))
        return

    click.secho("✅ Manifest is valid", fg="green", bold=True)
    click.echo(f"   Package:  {pkg.name} {pkg.version}")
    if pkg.description:
        click.echo(f"   About:    {pkg.description}")
    if pkg.homepage:
        click.echo(f"   Homepage: {pkg.homepage}")
    click.echo(f"   URL:      {pkg.resolved_url()}")
    click.echo(f"   Checksum: {pkg.checksum}")
    for action in pkg.install:
        click.echo(f"   • {action.describe()}")
    click.echo(f"   Test:     {pkg.test.command}  (expects '{pkg.test.expect}')")

    if pkg.platform and not platform_ok:
        click.echo()
        click.secho(
            f"⚠️  Requires {', '.join(t.value for t in pkg.platform)}; "
            f"this host is {', '.join(t.value for t in host) or 'unknown'}",
            fg="yellow",
        )
