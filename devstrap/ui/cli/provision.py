"""
CLI command for provisioning.

Thin wrapper over ``devstrap.core.use_cases.provision``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

# status → (marker, colour)
_MARKERS = {
    "ok": ("[ok]", "green"),
    "skipped": ("[skip]", "white"),
    "planned": ("[dry-run]", "cyan"),
    "warning": ("[warn]", "yellow"),
    "failed": ("[error]", "red"),
    "info": ("[info]", "blue"),
}


def render_receipt(receipt, *, verbose: bool = False) -> None:
    marker, color = _MARKERS.get(receipt.status, ("[?]", "white"))
    if receipt.status == "failed" and receipt.optional:
        marker, color = "[warn]", "yellow"
    click.secho(f"   {marker:<9} ", fg=color, nl=False)
    label = f"{receipt.kind}:{receipt.entity}"
    click.echo(f"{label}  {receipt.message}" if receipt.message else label)
    if verbose and receipt.duration_ms:
        click.echo(f"             ({receipt.duration_ms}ms)")


@click.command()
@click.option(
    "--manifest", "-m", "manifest_path",
    type=click.Path(path_type=Path), default=None,
    help="Manifest file (default: platform manifest under manifests/).",
)
@click.option("--dry-run", is_flag=True, help="Report planned changes; mutate nothing.")
@click.option("--skip-packages", is_flag=True, help="Skip repositories, index refresh and packages.")
@click.option("--skip-runtimes", is_flag=True, help="Skip runtime installation and validation.")
@click.option("--dotfiles-source", default=None, help="Local dotfiles source directory.")
@click.option("--dotfiles-repo", default=None, help="Remote dotfiles repository URL.")
@click.option("--force-source", is_flag=True, help="Replace a custom local dotfiles source (backed up first).")
@click.option("--allow-native-linux", is_flag=True, help="Allow Linux provisioning outside WSL.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def provision(
    ctx: click.Context,
    manifest_path: Path | None,
    dry_run: bool,
    skip_packages: bool,
    skip_runtimes: bool,
    dotfiles_source: str | None,
    dotfiles_repo: str | None,
    force_source: bool,
    allow_native_linux: bool,
    mock: bool,
    as_json: bool,
) -> None:
    """Converge this machine to its manifest.

    Examples:

        devstrap provision --dry-run

        devstrap provision --manifest manifests/windows.packages.json

        devstrap provision --dotfiles-repo https://github.com/me/dotfiles.git
    """
    from devstrap.core.engine.orchestrator import ProvisionOptions
    from devstrap.core.use_cases.provision import provision as run_provision

    if dotfiles_source and dotfiles_repo:
        click.secho("❌ Use either --dotfiles-source or --dotfiles-repo, not both", fg="red")
        sys.exit(1)

    options = ProvisionOptions(
        dry_run=dry_run,
        skip_packages=skip_packages,
        skip_runtimes=skip_runtimes,
        dotfiles_source=dotfiles_source,
        dotfiles_repo=dotfiles_repo,
        force_source=force_source,
        allow_native_linux=allow_native_linux,
    )
    result = run_provision(manifest_path, options, mock_mode=mock)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    quiet = ctx.obj.get("quiet", False) if ctx.obj else False
    verbose = ctx.obj.get("verbose", False) if ctx.obj else False
    report = result.report

    mode_label = "[dry-run] " if dry_run else ""
    mode_label += "[mock] " if result.mock_mode else ""
    if not quiet:
        click.secho(f"\n⚡ {mode_label}provision", fg="cyan", bold=True)
        if report and report.manifest_path:
            click.echo(f"   Manifest: {report.manifest_path}")
        click.echo()

    if report:
        for phase in report.phases:
            shown = [r for r in phase.receipts if verbose or r.status != "info" or r.failed]
            if not shown or (quiet and all(r.status in ("skipped", "info") for r in shown)):
                continue
            if not quiet:
                click.secho(f"   {phase.name}", bold=True)
            for receipt in shown:
                if quiet and receipt.status in ("skipped", "info"):
                    continue
                render_receipt(receipt, verbose=verbose)

    click.echo()
    if not result.ok:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert report is not None
    summary = (
        f"{report.count('ok')} changed, {report.count('skipped')} unchanged, "
        f"{report.count('planned')} planned, {report.count('warning')} warnings"
    )
    if report.optional_failures:
        summary += f", {len(report.optional_failures)} optional failed"
    color = "yellow" if report.count("warning") or report.optional_failures else "green"
    click.secho(f"✅ {summary}", fg=color, bold=True)
    click.echo()
