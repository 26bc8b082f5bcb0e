"""
Scoop adapter — Windows user-level packages, grouped in buckets.

A reference's qualifier names the bucket (``extras/vscode``); the
bucket is added before the first install that needs it.
"""

from __future__ import annotations

import logging

from devstrap.adapters.base import PackageManager
from devstrap.adapters.shell.command import CommandResult
from devstrap.core.models.manifest import PackageReference
from devstrap.core.models.platform import ProcessEnvironment

logger = logging.getLogger(__name__)


class ScoopPackageManager(PackageManager):
    """``scoop`` CLI."""

    executable = "scoop"

    @property
    def name(self) -> str:
        return "scoop"

    def is_installed(self, ref: PackageReference, env: ProcessEnvironment) -> bool:
        # `scoop prefix` only consults the local apps directory
        result = self.runner.run(["scoop", "prefix", ref.name], env=env, timeout=60)
        if result.error:
            logger.warning("Package query failed for %s: %s", ref, result.error)
        return result.ok and bool(result.stdout.strip())

    def prepare(self, ref: PackageReference, env: ProcessEnvironment) -> CommandResult | None:
        if not ref.qualifier or ref.qualifier in self.buckets(env):
            return None
        return self.runner.run(["scoop", "bucket", "add", ref.qualifier], env=env)

    def buckets(self, env: ProcessEnvironment) -> set[str]:
        """Names of the buckets already added."""
        result = self.runner.run(["scoop", "bucket", "list"], env=env, timeout=60)
        if not result.ok:
            return set()
        names: set[str] = set()
        for line in result.stdout.splitlines():
            parts = line.split()
            # Table output: header, dashes, then "<name> <source> ..." rows
            if not parts or parts[0] in ("Name", "----") or set(parts[0]) == {"-"}:
                continue
            names.add(parts[0])
        return names

    def install(self, ref: PackageReference, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["scoop", "install", str(ref)], env=env)

    def refresh_index(self, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["scoop", "update"], env=env)

    def describe_install(self, ref: PackageReference) -> str:
        return f"scoop install {ref}"
