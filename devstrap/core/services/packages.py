"""
Package installer — mandatory and optional packages via the native manager.

Every reference is probed first; present packages are skipped without
invoking the manager at all.  A failed mandatory install raises
``MandatoryStepFailure`` and ends the run.  A failed optional install
becomes a ``failed`` receipt with ``optional=True`` and the loop moves on.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator

from devstrap.adapters.base import PackageManager
from devstrap.core.errors import MandatoryStepFailure
from devstrap.core.models.action import Receipt
from devstrap.core.models.manifest import PackageReference
from devstrap.core.models.platform import ProcessEnvironment
from devstrap.core.services.probe import CapabilityProbe

logger = logging.getLogger(__name__)


class PackageInstaller:
    """Installs package references through one ``PackageManager``."""

    def __init__(
        self,
        manager: PackageManager,
        probe: CapabilityProbe,
        *,
        dry_run: bool = False,
    ):
        self.manager = manager
        self.probe = probe
        self.dry_run = dry_run
        self._index_refreshed = False

    def missing(
        self,
        refs: Iterable[PackageReference],
        env: ProcessEnvironment,
    ) -> list[PackageReference]:
        """References the probe reports as not installed."""
        return [ref for ref in refs if not self.probe.is_package_installed(ref, env)]

    def refresh_index(self, env: ProcessEnvironment, *, reason: str) -> Receipt:
        """Refresh package metadata once per run.

        Raises:
            MandatoryStepFailure: the refresh command failed.
        """
        entity = self.manager.name
        if self._index_refreshed:
            return Receipt.skip("index", entity, "already refreshed this run")
        self._index_refreshed = True

        if self.dry_run:
            return Receipt.planned("index", entity, f"refresh package index ({reason})")

        logger.info("Refreshing %s package index (%s)", entity, reason)
        result = self.manager.refresh_index(env)
        if not result.ok:
            raise MandatoryStepFailure(
                f"Package index refresh failed for {entity}",
                entity=entity,
                detail=result.diagnostic(),
            )
        return Receipt.done("index", entity, f"index refreshed ({reason})", duration_ms=result.elapsed_ms)

    def install_mandatory(
        self,
        refs: Iterable[PackageReference],
        env: ProcessEnvironment,
    ) -> Iterator[Receipt]:
        """Install required packages, stopping at the first failure.

        Raises:
            MandatoryStepFailure: naming the package that failed.
        """
        for ref in refs:
            receipt = self._install(ref, env, optional=False)
            if receipt.failed:
                raise MandatoryStepFailure(
                    f"Mandatory package '{ref}' failed to install: {receipt.message}",
                    entity=str(ref),
                    detail=receipt.message,
                )
            yield receipt

    def install_optional(
        self,
        refs: Iterable[PackageReference],
        env: ProcessEnvironment,
    ) -> Iterator[Receipt]:
        """Install best-effort packages; failures are reported, not raised."""
        for ref in refs:
            receipt = self._install(ref, env, optional=True)
            if receipt.failed:
                logger.warning("Optional package %s unavailable: %s", ref, receipt.message)
            yield receipt

    # ── Internal ────────────────────────────────────────────────

    def _install(self, ref: PackageReference, env: ProcessEnvironment, *, optional: bool) -> Receipt:
        entity = str(ref)
        if self.probe.is_package_installed(ref, env):
            return Receipt.skip("package", entity, "already installed", optional=optional)

        if self.dry_run:
            return Receipt.planned(
                "package", entity, self.manager.describe_install(ref), optional=optional,
            )

        start = time.monotonic()
        prepared = self.manager.prepare(ref, env)
        if prepared is not None and not prepared.ok:
            return Receipt.failure(
                "package", entity,
                f"cannot prepare '{ref.qualifier}': {prepared.diagnostic()}",
                optional=optional,
            )

        logger.info("Installing %s via %s", entity, self.manager.name)
        result = self.manager.install(ref, env)
        duration_ms = int((time.monotonic() - start) * 1000)
        if not result.ok:
            return Receipt.failure(
                "package", entity, result.diagnostic(),
                optional=optional, duration_ms=duration_ms,
            )
        return Receipt.done("package", entity, "installed", optional=optional, duration_ms=duration_ms)
