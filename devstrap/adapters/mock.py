"""
Mock adapters — in-memory stand-ins for every external tool.

Used by ``devstrap provision --mock`` to exercise a manifest end to end
without installing anything, and by the test suite.  Each mock keeps a
call log so callers can assert exactly which mutations happened.
"""

from __future__ import annotations

import os
import stat
from collections.abc import Sequence
from pathlib import Path

from devstrap.adapters.base import DotfilesEngine, PackageManager, RuntimeManager
from devstrap.adapters.shell.command import CommandResult, CommandRunner
from devstrap.core.models.manifest import PackageReference, RuntimeSpec
from devstrap.core.models.platform import ProcessEnvironment


def _ok(*cmd: str) -> CommandResult:
    return CommandResult(command=list(cmd), returncode=0, stdout="[mock] ok")


def _fail(error: str, *cmd: str) -> CommandResult:
    return CommandResult(command=list(cmd), returncode=1, stderr=error)


class MockCommandRunner(CommandRunner):
    """Runner that records commands instead of executing them.

    Shell snippets are looked up by their script text, other commands by
    their space-joined argv.  Anything not listed exits with
    ``default_returncode``.
    """

    def __init__(
        self,
        system: str | None = None,
        returncodes: dict[str, int] | None = None,
        default_returncode: int = 0,
    ):
        super().__init__(system=system)
        self.returncodes = dict(returncodes or {})
        self.default_returncode = default_returncode
        self.calls: list[list[str]] = []

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
        key = argv[-1] if argv[:-1] == self.shell_argv("")[:-1] else " ".join(argv)
        code = self.returncodes.get(key, self.default_returncode)
        if code == 0:
            return CommandResult(command=argv, returncode=0, stdout="[mock] ok")
        return CommandResult(command=argv, returncode=code, stderr=f"[mock] exit {code}")

    @property
    def shell_calls(self) -> list[str]:
        """Script text of every shell snippet run, in order."""
        prefix = self.shell_argv("")[:-1]
        return [argv[-1] for argv in self.calls if argv[:-1] == prefix]


class MockPackageManager(PackageManager):
    """Package manager backed by a set of installed identities.

    Args:
        manager_name: Identifier to report (``apt``, ``scoop``...).
        installed: References already present.
        unavailable: References whose install fails.
        available: Whether the manager itself is "on PATH".
    """

    def __init__(
        self,
        manager_name: str = "apt",
        installed: list[str] | None = None,
        unavailable: list[str] | None = None,
        available: bool = True,
    ):
        super().__init__(CommandRunner())
        self._name = manager_name
        self._available = available
        self.installed = {PackageReference.parse(r).identity for r in installed or []}
        self.unavailable = {PackageReference.parse(r).identity for r in unavailable or []}
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def install_calls(self) -> list[str]:
        return [ref for op, ref in self.calls if op == "install"]

    def is_available(self, env: ProcessEnvironment) -> bool:
        return self._available

    def is_installed(self, ref: PackageReference, env: ProcessEnvironment) -> bool:
        self.calls.append(("query", str(ref)))
        return ref.identity in self.installed

    def install(self, ref: PackageReference, env: ProcessEnvironment) -> CommandResult:
        self.calls.append(("install", str(ref)))
        if ref.identity in self.unavailable:
            return _fail(f"Unable to locate package {ref}", "install", str(ref))
        self.installed.add(ref.identity)
        return _ok("install", str(ref))

    def refresh_index(self, env: ProcessEnvironment) -> CommandResult:
        self.calls.append(("refresh", ""))
        return _ok("refresh")


class MockRuntimeManager(RuntimeManager):
    """Runtime manager that writes stub executables as its "shims".

    ``reshim`` creates one executable per installed runtime's probe
    command under ``shim_root``, so PATH-based validation behaves as it
    would against a real manager.
    """

    def __init__(
        self,
        shim_root: Path,
        installed: list[str] | None = None,
        failing: list[str] | None = None,
        available: bool = True,
        broken_shims: bool = False,
    ):
        super().__init__(CommandRunner())
        self.shim_root = Path(shim_root)
        self._available = available
        self.broken_shims = broken_shims
        self.installed = {RuntimeSpec(spec=s).spec for s in installed or []}
        self.failing = set(failing or [])
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "mise"

    def is_available(self, env: ProcessEnvironment) -> bool:
        return self._available

    def where(self, spec: RuntimeSpec, env: ProcessEnvironment) -> str | None:
        self.calls.append(("where", spec.spec))
        if spec.spec in self.installed:
            return str(self.shim_root.parent / "installs" / spec.name)
        return None

    def use(self, spec: RuntimeSpec, env: ProcessEnvironment) -> CommandResult:
        self.calls.append(("use", spec.spec))
        if spec.spec in self.failing:
            return _fail(f"no versions found for {spec.spec}", "use", spec.spec)
        self.installed.add(spec.spec)
        return _ok("use", spec.spec)

    def reshim(self, env: ProcessEnvironment) -> CommandResult:
        self.calls.append(("reshim", ""))
        if self.broken_shims:
            return _ok("reshim")
        self.shim_root.mkdir(parents=True, exist_ok=True)
        for raw in self.installed:
            command = RuntimeSpec(spec=raw).probe_command
            stub = self.shim_root / (f"{command}.cmd" if os.name == "nt" else command)
            stub.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
            stub.chmod(stub.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return _ok("reshim")

    def which(self, command: str, env: ProcessEnvironment) -> str | None:
        self.calls.append(("which", command))
        return None

    def shims_dir(self, home: Path) -> Path:
        return self.shim_root


class MockDotfilesEngine(DotfilesEngine):
    """Dotfiles engine with scripted managed targets and origins."""

    def __init__(
        self,
        home: Path,
        managed: dict[str, list[str]] | None = None,
        origins: dict[str, str] | None = None,
        available: bool = True,
    ):
        super().__init__(CommandRunner(), home)
        self._available = available
        self.managed = {str(Path(k)): v for k, v in (managed or {}).items()}
        self.origins = {str(Path(k)): v for k, v in (origins or {}).items()}
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "chezmoi"

    def is_available(self, env: ProcessEnvironment) -> bool:
        return self._available

    @property
    def config_path(self) -> Path:
        return self.home / ".config" / "chezmoi" / "chezmoi.toml"

    @property
    def default_source_dir(self) -> Path:
        return self.home / ".local" / "share" / "chezmoi"

    def managed_targets(self, source_dir: Path, env: ProcessEnvironment) -> list[str]:
        return list(self.managed.get(str(Path(source_dir)), []))

    def origin(self, source_dir: Path, env: ProcessEnvironment) -> str | None:
        return self.origins.get(str(Path(source_dir)))

    def init_remote(self, url: str, env: ProcessEnvironment) -> CommandResult:
        self.calls.append(("init", url))
        target = self.default_source_dir
        target.mkdir(parents=True, exist_ok=True)
        self.origins[str(target)] = url
        return _ok("init", url)

    def apply(self, source_dir: Path, env: ProcessEnvironment) -> CommandResult:
        self.calls.append(("apply", str(source_dir)))
        return _ok("apply", str(source_dir))
