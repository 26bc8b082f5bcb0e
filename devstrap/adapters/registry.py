"""
Adapter registry — picks the concrete tools for the running platform.

The orchestrator never instantiates adapters itself; it asks the
registry for the package manager named in the manifest, the runtime
manager, and the dotfiles engine.  Mock mode swaps every adapter for
its in-memory double.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from devstrap.adapters.base import DotfilesEngine, PackageManager, RuntimeManager
from devstrap.adapters.dotfiles.chezmoi import ChezmoiEngine
from devstrap.adapters.mock import (
    MockCommandRunner,
    MockDotfilesEngine,
    MockPackageManager,
    MockRuntimeManager,
)
from devstrap.adapters.packages.apt import AptPackageManager
from devstrap.adapters.packages.scoop import ScoopPackageManager
from devstrap.adapters.packages.winget import WingetPackageManager
from devstrap.adapters.runtimes.mise import MiseRuntimeManager
from devstrap.adapters.shell.command import CommandRunner
from devstrap.core.errors import PreconditionError
from devstrap.core.models.manifest import SUPPORTED_PACKAGE_MANAGERS
from devstrap.core.models.platform import PlatformInfo

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Holds the adapters for one provisioning run."""

    def __init__(
        self,
        package_managers: dict[str, PackageManager],
        runtime_manager: RuntimeManager,
        dotfiles_engine: DotfilesEngine,
        runner: CommandRunner | None = None,
        mock_mode: bool = False,
        sandbox: Path | None = None,
        owns_sandbox: bool = False,
    ):
        self._package_managers = dict(package_managers)
        self.runtime_manager = runtime_manager
        self.dotfiles_engine = dotfiles_engine
        self.runner = runner or CommandRunner()
        self.mock_mode = mock_mode
        self.sandbox = sandbox      # mock mode: root for every file devstrap writes
        self._owns_sandbox = owns_sandbox

    @classmethod
    def for_platform(
        cls,
        platform: PlatformInfo,
        *,
        runner: CommandRunner | None = None,
        mock_mode: bool = False,
    ) -> AdapterRegistry:
        """Build the registry of real (or mock) adapters for ``platform``.

        Mock mode records every command instead of running it and roots
        all file writes in a fresh temporary sandbox, removed by ``close()``.
        """
        home = platform.home_path
        supported = SUPPORTED_PACKAGE_MANAGERS.get(platform.system, ())

        if mock_mode:
            sandbox = Path(tempfile.mkdtemp(prefix="devstrap-mock-"))
            logger.info("Mock mode: sandbox at %s", sandbox)
            return cls(
                package_managers={pm: MockPackageManager(pm) for pm in supported},
                runtime_manager=MockRuntimeManager(sandbox / "mise" / "shims"),
                dotfiles_engine=MockDotfilesEngine(sandbox / "home"),
                runner=runner or MockCommandRunner(system=platform.system),
                mock_mode=True,
                sandbox=sandbox,
                owns_sandbox=True,
            )

        runner = runner or CommandRunner(system=platform.system)

        real: dict[str, PackageManager] = {
            "apt": AptPackageManager(runner),
            "scoop": ScoopPackageManager(runner),
            "winget": WingetPackageManager(runner),
        }
        return cls(
            package_managers={pm: real[pm] for pm in supported},
            runtime_manager=MiseRuntimeManager(runner),
            dotfiles_engine=ChezmoiEngine(runner, home),
            runner=runner,
        )

    def package_manager(self, identifier: str) -> PackageManager:
        """Look up the package manager the manifest selected."""
        pm = self._package_managers.get(identifier)
        if pm is None:
            raise PreconditionError(
                f"Package manager '{identifier}' is not supported on this platform "
                f"(supported: {', '.join(sorted(self._package_managers)) or 'none'})"
            )
        return pm

    def list_package_managers(self) -> list[str]:
        return list(self._package_managers)

    def close(self) -> None:
        """Remove the temporary sandbox this registry created, if any."""
        if self._owns_sandbox and self.sandbox is not None:
            shutil.rmtree(self.sandbox, ignore_errors=True)
            logger.debug("Mock sandbox removed: %s", self.sandbox)
            self._owns_sandbox = False

    def __enter__(self) -> AdapterRegistry:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
