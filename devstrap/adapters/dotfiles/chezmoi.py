"""
chezmoi adapter — the external dotfiles engine.

devstrap only decides which source chezmoi should use; chezmoi itself
renders and writes the managed files.
"""

from __future__ import annotations

import logging
from pathlib import Path

from devstrap.adapters.base import DotfilesEngine
from devstrap.adapters.shell.command import CommandResult
from devstrap.core.models.platform import ProcessEnvironment

logger = logging.getLogger(__name__)


class ChezmoiEngine(DotfilesEngine):
    """``chezmoi`` CLI plus ``git`` for origin inspection."""

    executable = "chezmoi"

    @property
    def name(self) -> str:
        return "chezmoi"

    @property
    def config_path(self) -> Path:
        return self.home / ".config" / "chezmoi" / "chezmoi.toml"

    @property
    def default_source_dir(self) -> Path:
        return self.home / ".local" / "share" / "chezmoi"

    def managed_targets(self, source_dir: Path, env: ProcessEnvironment) -> list[str]:
        result = self.runner.run(
            ["chezmoi", "managed", "--source", str(source_dir)],
            env=env,
            timeout=120,
        )
        if not result.ok:
            logger.debug("chezmoi managed failed for %s: %s", source_dir, result.diagnostic())
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def origin(self, source_dir: Path, env: ProcessEnvironment) -> str | None:
        if not (source_dir / ".git").exists():
            return None
        result = self.runner.run(
            ["git", "-C", str(source_dir), "remote", "get-url", "origin"],
            env=env,
            timeout=30,
        )
        url = result.stdout.strip()
        return url if result.ok and url else None

    def init_remote(self, url: str, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["chezmoi", "init", url], env=env)

    def apply(self, source_dir: Path, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["chezmoi", "apply", "--source", str(source_dir)], env=env)
