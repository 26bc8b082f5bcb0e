"""
Script installer — phase-tagged custom installers with their own check.

    checkCommand exits 0  →  already installed, skip
    otherwise             →  run installCommand; non-zero exit is fatal

Check commands are read-only predicates, so they run in dry-run too;
only the install command is replaced by a ``planned`` receipt.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from devstrap.adapters.shell.command import CommandRunner
from devstrap.core.errors import MandatoryStepFailure
from devstrap.core.models.action import Receipt
from devstrap.core.models.manifest import ScriptInstall, ScriptPhase
from devstrap.core.models.platform import ProcessEnvironment

logger = logging.getLogger(__name__)

CHECK_TIMEOUT = 120


class ScriptInstaller:
    def __init__(self, runner: CommandRunner, *, dry_run: bool = False):
        self.runner = runner
        self.dry_run = dry_run

    def run(
        self,
        phase: ScriptPhase,
        installs: Iterable[ScriptInstall],
        env: ProcessEnvironment,
    ) -> Iterator[Receipt]:
        """Run the installs tagged ``phase``, in manifest order.

        Raises:
            MandatoryStepFailure: an install command exited non-zero.
        """
        for install in installs:
            if install.phase != phase:
                continue
            yield self._run_one(install, env)

    def _run_one(self, install: ScriptInstall, env: ProcessEnvironment) -> Receipt:
        check = self.runner.run_shell(install.check_command, env=env, timeout=CHECK_TIMEOUT)
        if check.ok:
            return Receipt.skip("script", install.name, "check passed", detail={"phase": install.phase})

        if self.dry_run:
            return Receipt.planned(
                "script", install.name, f"run: {install.install_command}",
                detail={"phase": install.phase},
            )

        logger.info("Running script install %s (%s)", install.name, install.phase)
        result = self.runner.run_shell(install.install_command, env=env)
        if not result.ok:
            raise MandatoryStepFailure(
                f"Script install '{install.name}' failed ({install.phase}): {result.diagnostic()}",
                entity=install.name,
                detail=result.diagnostic(),
            )
        return Receipt.done(
            "script", install.name, "installed",
            duration_ms=result.elapsed_ms,
            detail={"phase": install.phase},
        )
