"""
Adapter base — contracts for the external tools devstrap drives.

The engine never builds native command lines itself.  It talks to three
kinds of collaborator through these interfaces:

    PackageManager   query(ref) -> bool, install(ref) -> result
    RuntimeManager   where / use / reshim / which
    DotfilesEngine   source inspection, remote init, apply

Queries return plain values and treat any failure as "absent".
Mutations return a ``CommandResult``; they never raise for a failed
command.  Classifying failures (mandatory, optional, warning) is the
services' job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from devstrap.adapters.shell.command import CommandResult, CommandRunner
from devstrap.core.models.manifest import PackageReference, RuntimeSpec
from devstrap.core.models.platform import ProcessEnvironment


class PackageManager(ABC):
    """A native package manager (apt, Scoop, winget)."""

    #: Binary that must be on PATH for this manager to work
    executable: str = ""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    @property
    @abstractmethod
    def name(self) -> str:
        """Manifest identifier (``apt``, ``scoop``, ``winget``)."""

    def is_available(self, env: ProcessEnvironment) -> bool:
        return env.which(self.executable) is not None

    @abstractmethod
    def is_installed(self, ref: PackageReference, env: ProcessEnvironment) -> bool:
        """Local-only installed check. Must not touch the network."""

    @abstractmethod
    def install(self, ref: PackageReference, env: ProcessEnvironment) -> CommandResult:
        """Install one package."""

    @abstractmethod
    def refresh_index(self, env: ProcessEnvironment) -> CommandResult:
        """Refresh the package index / source metadata."""

    def prepare(self, ref: PackageReference, env: ProcessEnvironment) -> CommandResult | None:
        """Make the reference's qualifier usable (e.g. add a bucket).

        Returns None when nothing had to be done.
        """
        return None

    def describe_install(self, ref: PackageReference) -> str:
        """Human-readable install command, for dry-run output."""
        return f"{self.name} install {ref}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class RuntimeManager(ABC):
    """A language/toolchain version manager (mise)."""

    executable: str = ""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool identifier."""

    def is_available(self, env: ProcessEnvironment) -> bool:
        return env.which(self.executable) is not None

    @abstractmethod
    def where(self, spec: RuntimeSpec, env: ProcessEnvironment) -> str | None:
        """Install directory of ``spec``, or None when not installed."""

    @abstractmethod
    def use(self, spec: RuntimeSpec, env: ProcessEnvironment) -> CommandResult:
        """Install ``spec`` and make it the global default."""

    @abstractmethod
    def reshim(self, env: ProcessEnvironment) -> CommandResult:
        """Regenerate command shims for every installed runtime."""

    @abstractmethod
    def which(self, command: str, env: ProcessEnvironment) -> str | None:
        """The manager's own resolution of ``command``, or None."""

    @abstractmethod
    def shims_dir(self, home: Path) -> Path:
        """Directory holding generated shims."""


class DotfilesEngine(ABC):
    """The external engine that materialises managed dotfiles (chezmoi)."""

    executable: str = ""

    def __init__(self, runner: CommandRunner, home: Path):
        self.runner = runner
        self.home = home

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool identifier."""

    def is_available(self, env: ProcessEnvironment) -> bool:
        return env.which(self.executable) is not None

    @property
    @abstractmethod
    def config_path(self) -> Path:
        """The engine's TOML config file."""

    @property
    @abstractmethod
    def default_source_dir(self) -> Path:
        """Where the engine keeps its source when none is configured."""

    @abstractmethod
    def managed_targets(self, source_dir: Path, env: ProcessEnvironment) -> list[str]:
        """Targets the given source currently manages (empty on error)."""

    @abstractmethod
    def origin(self, source_dir: Path, env: ProcessEnvironment) -> str | None:
        """Git origin URL of a source checkout, or None."""

    @abstractmethod
    def init_remote(self, url: str, env: ProcessEnvironment) -> CommandResult:
        """Clone a remote source into the default source directory."""

    @abstractmethod
    def apply(self, source_dir: Path, env: ProcessEnvironment) -> CommandResult:
        """Materialise managed files from ``source_dir``."""
