"""
Command runner — the single place devstrap starts subprocesses.

Every package-manager, runtime-manager, dotfiles-engine and script
invocation goes through ``CommandRunner``.  It never raises for command
failures: a missing binary, a non-zero exit, or a timeout all come back
as a ``CommandResult`` the caller classifies.

Calls are strictly sequential; the runner waits for each process to
exit before returning, so no two package-manager invocations overlap.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from devstrap.core.models.platform import ProcessEnvironment

logger = logging.getLogger(__name__)

_TAIL_CHARS = 2000


@dataclass
class CommandResult:
    """Outcome of one subprocess."""

    command: list[str] = field(default_factory=list)
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0
    error: str = ""                 # launch failure or timeout, if any

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.error

    def diagnostic(self) -> str:
        """Best single-string explanation of a failure."""
        if self.error:
            return self.error
        text = (self.stderr or self.stdout).strip()
        if text:
            return text[-_TAIL_CHARS:]
        return f"exit code {self.returncode}"


class CommandRunner:
    """Run external commands with an explicit ``ProcessEnvironment``.

    Args:
        system: ``"windows"`` selects PowerShell for shell predicates and
            disables ``sudo``; anything else uses ``bash -lc``.
        default_timeout: Seconds before a command is killed.
    """

    def __init__(self, system: str | None = None, default_timeout: int = 3600):
        self.system = system or ("windows" if os.name == "nt" else "linux")
        self.default_timeout = default_timeout

    # ── Execution ───────────────────────────────────────────────

    def run(
        self,
        cmd: Sequence[str],
        *,
        env: ProcessEnvironment | None = None,
        needs_sudo: bool = False,
        timeout: int | None = None,
        input_text: str | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run ``cmd`` and capture its output.

        The executable is resolved against ``env``'s PATH first, so tools
        placed on PATH by an earlier phase are found even though this
        process was started without them.
        """
        argv = list(cmd)
        if not argv:
            return CommandResult(command=argv, error="empty command")

        resolved = env.which(argv[0]) if env is not None else None
        if resolved:
            argv[0] = resolved

        if needs_sudo and self._needs_sudo_prefix():
            argv = ["sudo"] + argv

        timeout = timeout or self.default_timeout
        logger.debug("exec: %s", " ".join(argv))
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                input=input_text,
                env=env.as_env() if env is not None else None,
                cwd=cwd or (env.cwd if env is not None and env.cwd else None),
            )
        except FileNotFoundError:
            return CommandResult(command=argv, error=f"command not found: {cmd[0]}")
        except subprocess.TimeoutExpired:
            return CommandResult(command=argv, error=f"timed out after {timeout}s")
        except OSError as exc:
            return CommandResult(command=argv, error=f"cannot execute {cmd[0]}: {exc}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = CommandResult(
            command=argv,
            returncode=proc.returncode,
            stdout=(proc.stdout or "")[-_TAIL_CHARS:],
            stderr=(proc.stderr or "")[-_TAIL_CHARS:],
            elapsed_ms=elapsed_ms,
        )
        if not result.ok:
            logger.debug("exit %s from %s: %s", proc.returncode, argv[0], result.diagnostic())
        return result

    def run_shell(
        self,
        script: str,
        *,
        env: ProcessEnvironment | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """Run a shell snippet (login bash on Linux, PowerShell on Windows)."""
        return self.run(self.shell_argv(script), env=env, timeout=timeout)

    def shell_argv(self, script: str) -> list[str]:
        if self.system == "windows":
            return ["powershell", "-NoProfile", "-NonInteractive", "-Command", script]
        return ["bash", "-lc", script]

    # ── Internal ────────────────────────────────────────────────

    def _needs_sudo_prefix(self) -> bool:
        if self.system == "windows" or not hasattr(os, "geteuid"):
            return False
        return os.geteuid() != 0
