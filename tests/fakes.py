"""
Scripted command runner for adapter and service tests.
"""

from __future__ import annotations

from collections.abc import Sequence

from devstrap.adapters.shell.command import CommandResult, CommandRunner
from devstrap.core.models.platform import ProcessEnvironment


class ScriptedRunner(CommandRunner):
    """Runner that answers from a table keyed by the space-joined argv.

    Unlisted commands return ``default``.  Every call is recorded.
    """

    def __init__(self, responses: dict[str, CommandResult] | None = None, default: CommandResult | None = None):
        super().__init__(system="linux")
        self.responses = dict(responses or {})
        self.default = default or CommandResult(returncode=0)
        self.calls: list[list[str]] = []
        self.sudo_calls: list[list[str]] = []
        self.inputs: list[str | None] = []

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
        argv = list(cmd)
        self.calls.append(argv)
        self.inputs.append(input_text)
        if needs_sudo:
            self.sudo_calls.append(argv)
        found = self.responses.get(" ".join(argv), self.default)
        return CommandResult(
            command=argv,
            returncode=found.returncode,
            stdout=found.stdout,
            stderr=found.stderr,
            error=found.error,
        )

    def called(self, prefix: str) -> bool:
        return any(" ".join(c).startswith(prefix) for c in self.calls)


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(returncode=0, stdout=stdout)


def fail(stderr: str = "boom", code: int = 1) -> CommandResult:
    return CommandResult(returncode=code, stderr=stderr)
