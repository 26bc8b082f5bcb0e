"""
Capability probe — the read-only "is this already present?" layer.

Every mutating service asks the probe before acting; that is what makes
a rerun a no-op.  Probes never mutate and never raise: if the underlying
query itself fails (manager missing, unreadable file, crashed
subprocess) the answer is "absent" and the caller converges from there.

Results are not cached.  An earlier phase can change any answer, so
callers re-ask after each phase boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from devstrap.adapters.base import PackageManager, RuntimeManager
from devstrap.core.models.manifest import PackageReference, RuntimeSpec
from devstrap.core.models.platform import ProcessEnvironment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryProbe:
    """Observed trust material for one repository source."""

    keyring_present: bool
    line_present: bool

    @property
    def configured(self) -> bool:
        return self.keyring_present and self.line_present


class CapabilityProbe:
    """Side-effect-free queries over packages, commands, runtimes and sources."""

    def __init__(
        self,
        package_manager: PackageManager | None = None,
        runtime_manager: RuntimeManager | None = None,
    ):
        self.package_manager = package_manager
        self.runtime_manager = runtime_manager

    # ── Packages ────────────────────────────────────────────────

    def is_package_installed(self, ref: PackageReference, env: ProcessEnvironment) -> bool:
        if self.package_manager is None:
            return False
        try:
            return bool(self.package_manager.is_installed(ref, env))
        except Exception as exc:
            logger.warning("Installed check for %s failed (%s); treating as absent", ref, exc)
            return False

    # ── Commands ────────────────────────────────────────────────

    def is_command_on_path(self, name: str, env: ProcessEnvironment) -> bool:
        return env.which(name) is not None

    # ── Runtimes ────────────────────────────────────────────────

    @staticmethod
    def resolve_runtime_command(spec: RuntimeSpec) -> str:
        """Executable that proves ``spec`` is usable (pure derivation)."""
        return spec.probe_command

    def is_runtime_installed(self, spec: RuntimeSpec, env: ProcessEnvironment) -> bool:
        """Ask the runtime manager, not PATH; shims may lag a PATH refresh."""
        manager = self.runtime_manager
        if manager is None:
            return False
        try:
            if not manager.is_available(env):
                return False
            return manager.where(spec, env) is not None
        except Exception as exc:
            logger.warning("Runtime check for %s failed (%s); treating as absent", spec, exc)
            return False

    # ── Repository sources ──────────────────────────────────────

    def probe_repository(self, keyring_path: str, list_path: str, rendered_line: str) -> RepositoryProbe:
        return RepositoryProbe(
            keyring_present=Path(keyring_path).is_file(),
            line_present=list_file_has_line(Path(list_path), rendered_line),
        )


def list_file_has_line(path: Path, line: str) -> bool:
    """Whether ``path`` contains ``line`` as a whole line (whitespace-trimmed)."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return False
    target = line.strip()
    return any(existing.strip() == target for existing in content.splitlines())
