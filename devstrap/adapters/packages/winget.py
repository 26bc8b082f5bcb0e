"""
winget adapter — Windows Package Manager.

References are package ids (``Microsoft.PowerShell``); a qualifier
selects the source (``msstore/9NBLGGH4NNS1``).
"""

from __future__ import annotations

import logging

from devstrap.adapters.base import PackageManager
from devstrap.adapters.shell.command import CommandResult
from devstrap.core.models.manifest import PackageReference
from devstrap.core.models.platform import ProcessEnvironment

logger = logging.getLogger(__name__)

_COMMON_FLAGS = ["--accept-source-agreements", "--disable-interactivity"]


class WingetPackageManager(PackageManager):
    """``winget`` CLI."""

    executable = "winget"

    @property
    def name(self) -> str:
        return "winget"

    def is_installed(self, ref: PackageReference, env: ProcessEnvironment) -> bool:
        result = self.runner.run(
            ["winget", "list", "--id", ref.name, "--exact", *_COMMON_FLAGS],
            env=env,
            timeout=120,
        )
        if result.error:
            logger.warning("Package query failed for %s: %s", ref, result.error)
        return result.ok and ref.name.lower() in result.stdout.lower()

    def install(self, ref: PackageReference, env: ProcessEnvironment) -> CommandResult:
        cmd = [
            "winget", "install", "--id", ref.name, "--exact", "--silent",
            "--accept-package-agreements", *_COMMON_FLAGS,
        ]
        if ref.qualifier:
            cmd += ["--source", ref.qualifier]
        return self.runner.run(cmd, env=env)

    def refresh_index(self, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["winget", "source", "update"], env=env)

    def describe_install(self, ref: PackageReference) -> str:
        source = f" --source {ref.qualifier}" if ref.qualifier else ""
        return f"winget install --id {ref.name} --exact{source}"
