"""
CLI commands for manifest inspection.

Thin wrappers over ``devstrap.core.use_cases.manifest_check``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click


@click.group()
def manifest() -> None:
    """Manifest — load and validate without provisioning."""


@manifest.command("check")
@click.option(
    "--manifest", "-m", "manifest_path",
    type=click.Path(path_type=Path), default=None,
    help="Manifest file (default: platform manifest under manifests/).",
)
@click.option(
    "--system", type=click.Choice(["linux", "windows"]), default=None,
    help="Validate for this platform (default: the running one).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def manifest_check(manifest_path: Path | None, system: str | None, as_json: bool) -> None:
    """Validate a manifest and print counts per entity type."""
    from devstrap.core.use_cases.manifest_check import check_manifest

    if system is None:
        from devstrap.core.services.platform_detect import detect_platform

        system = detect_platform().system

    result = check_manifest(manifest_path, system=system)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.manifest is not None
        click.secho("✅ Manifest is valid", fg="green", bold=True)
        click.echo(f"   File: {result.manifest_path}")
        for key, value in result.manifest.summary().items():
            click.echo(f"   {key.replace('_', ' ').capitalize()}: {value}")
    else:
        click.secho("❌ Manifest errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.valid:
        sys.exit(1)
