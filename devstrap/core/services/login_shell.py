"""
Login shell — set the user's default shell (Linux) when the manifest asks.

Never fatal: a missing shell binary or a failing ``chsh`` is a warning.
"""

from __future__ import annotations

import getpass
import logging
import os

from devstrap.adapters.shell.command import CommandRunner
from devstrap.core.models.action import Receipt
from devstrap.core.models.platform import PlatformInfo, ProcessEnvironment

logger = logging.getLogger(__name__)


def current_login_shell(user: str) -> str | None:
    """Login shell recorded in the passwd database (POSIX only)."""
    import pwd

    try:
        return pwd.getpwnam(user).pw_shell or None
    except KeyError:
        return None


class LoginShellConfigurator:
    def __init__(self, runner: CommandRunner, platform: PlatformInfo, *, dry_run: bool = False):
        self.runner = runner
        self.platform = platform
        self.dry_run = dry_run

    def ensure(self, shell: str | None, env: ProcessEnvironment, *, user: str | None = None) -> Receipt:
        if not shell:
            return Receipt.skip("shell", "login-shell", "no defaultShell declared")
        if self.platform.system != "linux":
            return Receipt.skip("shell", shell, "login shell is only managed on Linux")

        path = shell if os.path.isabs(shell) else env.which(shell)
        if not path or not os.path.exists(path):
            logger.warning("Default shell %s not found; leaving login shell unchanged", shell)
            return Receipt.warn("shell", shell, f"{shell} not found on PATH; login shell unchanged")

        user = user or getpass.getuser()
        current = current_login_shell(user)
        if current and os.path.realpath(current) == os.path.realpath(path):
            return Receipt.skip("shell", shell, f"already {current}")

        if self.dry_run:
            return Receipt.planned("shell", shell, f"chsh -s {path} {user}")

        if env.which("chsh") is None:
            return Receipt.warn("shell", shell, "chsh not available; login shell unchanged")

        result = self.runner.run(["chsh", "-s", path, user], env=env, needs_sudo=True, timeout=60)
        if not result.ok:
            logger.warning("chsh failed: %s", result.diagnostic())
            return Receipt.warn("shell", shell, f"chsh failed: {result.diagnostic()}")
        return Receipt.done("shell", shell, f"login shell set to {path}")
