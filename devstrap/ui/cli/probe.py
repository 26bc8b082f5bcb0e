"""
CLI commands for read-only capability queries.

Thin wrappers over ``devstrap.core.services.probe``.
"""

from __future__ import annotations

import json
import sys

import click


@click.group()
def probe() -> None:
    """Probe — ask whether a runtime or command is present."""


@probe.command()
@click.argument("spec")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def runtime(spec: str, as_json: bool) -> None:
    """Check whether the runtime manager has SPEC (e.g. node@lts)."""
    from pydantic import ValidationError

    from devstrap.adapters.registry import AdapterRegistry
    from devstrap.core.models.manifest import RuntimeSpec
    from devstrap.core.models.platform import ProcessEnvironment
    from devstrap.core.services.platform_detect import detect_platform
    from devstrap.core.services.probe import CapabilityProbe

    try:
        parsed = RuntimeSpec(spec=spec)
    except ValidationError as e:
        click.secho(f"❌ Invalid runtime spec: {e.errors()[0]['msg']}", fg="red")
        sys.exit(1)

    registry = AdapterRegistry.for_platform(detect_platform())
    env = ProcessEnvironment.from_os()
    capability = CapabilityProbe(runtime_manager=registry.runtime_manager)
    installed = capability.is_runtime_installed(parsed, env)
    command = capability.resolve_runtime_command(parsed)
    on_path = env.which(command)

    if as_json:
        click.echo(json.dumps({
            "runtime": parsed.spec,
            "installed": installed,
            "command": command,
            "on_path": on_path,
        }, indent=2))
        sys.exit(0 if installed else 1)

    if installed:
        click.secho(f"✅ {parsed.spec} installed", fg="green")
    else:
        click.secho(f"❌ {parsed.spec} not installed", fg="red")
    where = on_path or "(not on PATH)"
    click.echo(f"   Command: {command} → {where}")
    if not installed:
        sys.exit(1)


@probe.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def command(name: str, as_json: bool) -> None:
    """Check whether NAME resolves on PATH."""
    from devstrap.core.models.platform import ProcessEnvironment

    resolved = ProcessEnvironment.from_os().which(name)

    if as_json:
        click.echo(json.dumps({"command": name, "path": resolved}, indent=2))
        sys.exit(0 if resolved else 1)

    if resolved:
        click.secho(f"✅ {name} → {resolved}", fg="green")
    else:
        click.secho(f"❌ {name} not found on PATH", fg="red")
        sys.exit(1)
