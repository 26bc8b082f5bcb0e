"""
Runtime manager bridge — install runtimes through mise, then prove them.

The bridge never installs toolchains itself.  It asks the runtime
manager whether a spec is installed, delegates ``use`` when not, reshims
once after the batch, and finally checks each runtime's probe command
resolves on the current PATH.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from devstrap.adapters.base import RuntimeManager
from devstrap.core.errors import MandatoryStepFailure, ValidationFailure
from devstrap.core.models.action import Receipt
from devstrap.core.models.manifest import RuntimeSpec
from devstrap.core.models.platform import ProcessEnvironment
from devstrap.core.services.probe import CapabilityProbe

logger = logging.getLogger(__name__)

RESHIM_HINT = "Run 'mise reshim' and verify PATH includes mise shims"


class RuntimeBridge:
    def __init__(
        self,
        manager: RuntimeManager,
        probe: CapabilityProbe,
        *,
        dry_run: bool = False,
    ):
        self.manager = manager
        self.probe = probe
        self.dry_run = dry_run

    def ensure_runtime(self, spec: RuntimeSpec, env: ProcessEnvironment) -> Receipt:
        """Install ``spec`` unless the manager already has it.

        Raises:
            MandatoryStepFailure: the manager could not install it.
        """
        if self.probe.is_runtime_installed(spec, env):
            return Receipt.skip("runtime", spec.spec, "already installed")

        if self.dry_run:
            return Receipt.planned("runtime", spec.spec, f"{self.manager.name} use --global {spec.spec}")

        logger.info("Installing runtime %s via %s", spec, self.manager.name)
        result = self.manager.use(spec, env)
        if not result.ok:
            raise MandatoryStepFailure(
                f"Runtime '{spec}' failed to install: {result.diagnostic()}",
                entity=spec.spec,
                detail=result.diagnostic(),
            )
        return Receipt.done("runtime", spec.spec, "installed", duration_ms=result.elapsed_ms)

    def reshim_all(self, env: ProcessEnvironment) -> Receipt:
        """Regenerate shims once for the whole batch."""
        if self.dry_run:
            return Receipt.planned("reshim", self.manager.name, f"{self.manager.name} reshim")
        result = self.manager.reshim(env)
        if not result.ok:
            # Validation reports the concrete consequence
            logger.warning("%s reshim failed: %s", self.manager.name, result.diagnostic())
            return Receipt.warn("reshim", self.manager.name, f"reshim failed: {result.diagnostic()}")
        return Receipt.done("reshim", self.manager.name, "shims regenerated", duration_ms=result.elapsed_ms)

    def validate_on_path(
        self,
        specs: Iterable[RuntimeSpec],
        env: ProcessEnvironment,
    ) -> list[Receipt]:
        """Check every runtime's command resolves on ``env``'s PATH.

        Raises:
            ValidationFailure: listing every unresolved runtime with its
                command and what ``mise which`` reported.
        """
        receipts: list[Receipt] = []
        missing: list[dict[str, str]] = []

        for spec in specs:
            command = self.probe.resolve_runtime_command(spec)
            resolved = env.which(command)
            if resolved:
                receipts.append(
                    Receipt.note("validate", spec.spec, f"{command} → {resolved}", detail={"command": command})
                )
                continue
            manager_view = self.manager.which(command, env)
            missing.append({
                "runtime": spec.spec,
                "command": command,
                "manager_which": manager_view or "(not resolved)",
            })

        if missing:
            lines = [
                f"  {m['runtime']}: '{m['command']}' not on PATH "
                f"({self.manager.name} which: {m['manager_which']})"
                for m in missing
            ]
            raise ValidationFailure(
                "Runtime validation failed:\n" + "\n".join(lines) + f"\n{RESHIM_HINT}",
                missing=missing,
            )
        return receipts
