"""
Platform and process-environment value types.

``PlatformInfo`` is probed once per run.  ``ProcessEnvironment`` is the
engine's explicit view of PATH and variables: it is never mutated, and
each phase boundary produces a new value (see
``core.services.environment.refresh_environment``).
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict

SystemName = Literal["linux", "windows", "darwin", "unknown"]

DEBIAN_FAMILY = ("ubuntu", "debian", "linuxmint", "pop")


class PlatformInfo(BaseModel):
    """What the engine knows about the machine it is converging."""

    model_config = ConfigDict(frozen=True)

    system: SystemName
    distro_id: str = ""
    distro_like: str = ""
    codename: str = ""
    arch: str = ""
    is_wsl: bool = False
    home: str = ""

    @property
    def is_debian_family(self) -> bool:
        return self.distro_id in DEBIAN_FAMILY or "debian" in self.distro_like.split()

    @property
    def home_path(self) -> Path:
        return Path(self.home) if self.home else Path.home()


@dataclass(frozen=True)
class ProcessEnvironment:
    """Immutable snapshot of the PATH and variables subprocesses receive."""

    path: tuple[str, ...] = ()
    variables: Mapping[str, str] = field(default_factory=dict)
    cwd: str = ""

    @classmethod
    def from_os(cls) -> ProcessEnvironment:
        """Capture the current process environment."""
        variables = dict(os.environ)
        entries = tuple(p for p in variables.get("PATH", "").split(os.pathsep) if p)
        return cls(path=entries, variables=variables, cwd=os.getcwd())

    def has_path_entry(self, entry: str) -> bool:
        target = os.path.normcase(os.path.normpath(entry))
        return any(os.path.normcase(os.path.normpath(p)) == target for p in self.path)

    def with_path_entries(self, entries: Iterable[str]) -> tuple[ProcessEnvironment, list[str]]:
        """Return a new environment with existing, missing dirs prepended.

        Returns:
            ``(environment, added)`` where ``added`` lists the entries that
            were not on PATH before, in the order they were given.
        """
        added: list[str] = []
        for entry in entries:
            if not entry or not os.path.isdir(entry):
                continue
            if self.has_path_entry(entry) or entry in added:
                continue
            added.append(entry)
        if not added:
            return self, []
        new_path = tuple(added) + self.path
        return replace(self, path=new_path), added

    def as_env(self) -> dict[str, str]:
        """Variables to hand to ``subprocess`` (PATH rebuilt from ``path``)."""
        env = dict(self.variables)
        env["PATH"] = os.pathsep.join(self.path)
        return env

    def which(self, command: str) -> str | None:
        """Resolve a command against this environment's PATH."""
        if not command:
            return None
        return shutil.which(command, path=os.pathsep.join(self.path))
