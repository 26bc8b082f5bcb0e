"""
mise adapter — runtime/toolchain installs delegated to mise.

``where`` is the installed check: it answers from mise's own install
directory, so it stays correct while shims or PATH lag behind.
"""

from __future__ import annotations

import os
from pathlib import Path

from devstrap.adapters.base import RuntimeManager
from devstrap.adapters.shell.command import CommandResult
from devstrap.core.models.manifest import RuntimeSpec
from devstrap.core.models.platform import ProcessEnvironment


class MiseRuntimeManager(RuntimeManager):
    """``mise`` CLI."""

    executable = "mise"

    @property
    def name(self) -> str:
        return "mise"

    def where(self, spec: RuntimeSpec, env: ProcessEnvironment) -> str | None:
        result = self.runner.run(["mise", "where", spec.spec], env=env, timeout=60)
        path = result.stdout.strip()
        return path if result.ok and path else None

    def use(self, spec: RuntimeSpec, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["mise", "use", "--global", spec.spec], env=env)

    def reshim(self, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["mise", "reshim"], env=env, timeout=300)

    def which(self, command: str, env: ProcessEnvironment) -> str | None:
        result = self.runner.run(["mise", "which", command], env=env, timeout=60)
        path = result.stdout.strip()
        return path if result.ok and path else None

    def shims_dir(self, home: Path) -> Path:
        data_dir = os.environ.get("MISE_DATA_DIR")
        if data_dir:
            return Path(data_dir) / "shims"
        if os.name == "nt" and os.environ.get("LOCALAPPDATA"):
            return Path(os.environ["LOCALAPPDATA"]) / "mise" / "shims"
        return home / ".local" / "share" / "mise" / "shims"
