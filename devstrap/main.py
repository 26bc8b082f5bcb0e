"""
devstrap — CLI entrypoint.

Usage:
    devstrap --help
    devstrap provision --dry-run
    devstrap manifest check
"""

from __future__ import annotations

import os

import click

from devstrap import __version__
from devstrap.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="devstrap")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool) -> None:
    """devstrap — provision a workstation from a declarative manifest."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    level = resolve_level(
        debug=debug,
        verbose=verbose,
        quiet=quiet,
        env_level=os.environ.get("DEVSTRAP_LOG_LEVEL"),
    )
    setup_logging(
        level=level,
        log_file=os.environ.get("DEVSTRAP_LOG_FILE"),
        log_file_level=os.environ.get("DEVSTRAP_LOG_FILE_LEVEL"),
    )


# ── Register sub-command groups from devstrap/ui/cli/ ─────────────

from devstrap.ui.cli.manifest import manifest  # noqa: E402
from devstrap.ui.cli.probe import probe  # noqa: E402
from devstrap.ui.cli.provision import provision  # noqa: E402

cli.add_command(provision)
cli.add_command(manifest)
cli.add_command(probe)


if __name__ == "__main__":
    cli()
