"""
Engine orchestrator — the fixed-phase provisioning loop.

The orchestrator takes a manifest path and run options, resolves the
platform's adapters, and walks the phases strictly in order.  Each phase
collects receipts; a fatal error records a failure receipt in the
current phase and aborts every phase after it.

Flow:
    preflight → manifest → repositories → index → packages → optional
    → scripts (pre-runtime) → env → runtimes → scripts (post-runtime)
    → env → source → shell

The process environment is an explicit value: each ``env`` phase swaps
in a refreshed ``ProcessEnvironment`` so later phases see tools that
earlier phases put on disk.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from devstrap.adapters.registry import AdapterRegistry
from devstrap.core.config.loader import load_manifest, resolve_manifest_path
from devstrap.core.errors import (
    DevstrapError,
    MandatoryStepFailure,
    PreconditionError,
    ValidationFailure,
)
from devstrap.core.models.action import Receipt
from devstrap.core.models.manifest import DotfilesSettings, Manifest
from devstrap.core.models.platform import PlatformInfo, ProcessEnvironment
from devstrap.core.observability.logging_config import log_operation, log_phase
from devstrap.core.services.environment import refresh_environment
from devstrap.core.services.login_shell import LoginShellConfigurator
from devstrap.core.services.managed_source import ManagedSourceReconciler
from devstrap.core.services.packages import PackageInstaller
from devstrap.core.services.platform_detect import check_platform_supported
from devstrap.core.services.probe import CapabilityProbe
from devstrap.core.services.repositories import KeyFetcher, RepositoryConfigurator, fetch_url
from devstrap.core.services.runtimes import RuntimeBridge
from devstrap.core.services.scripts import ScriptInstaller

logger = logging.getLogger(__name__)

_MOCK_KEY = b"devstrap mock signing key\n"


@dataclass
class ProvisionOptions:
    """Run flags, as given on the command line."""

    dry_run: bool = False
    skip_packages: bool = False
    skip_runtimes: bool = False
    dotfiles_source: str | None = None
    dotfiles_repo: str | None = None
    force_source: bool = False
    allow_native_linux: bool = False


@dataclass
class PhaseResult:
    """Receipts of one phase."""

    name: str
    receipts: list[Receipt] = field(default_factory=list)

    def add(self, receipt: Receipt) -> Receipt:
        self.receipts.append(receipt)
        _log_receipt(self.name, receipt)
        return receipt

    def extend(self, receipts: Iterable[Receipt]) -> None:
        # One at a time so receipts before a raise are kept
        for receipt in receipts:
            self.add(receipt)

    @property
    def status(self) -> str:
        if any(r.failed and not r.optional for r in self.receipts):
            return "failed"
        if any(r.status in ("ok", "planned") for r in self.receipts):
            return "changed"
        return "ok"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


@dataclass
class ProvisionReport:
    """Everything one run observed and did."""

    operation_id: str = ""
    dry_run: bool = False
    manifest_path: str = ""
    platform: dict = field(default_factory=dict)
    phases: list[PhaseResult] = field(default_factory=list)
    error: str = ""

    @property
    def receipts(self) -> list[Receipt]:
        return [r for phase in self.phases for r in phase.receipts]

    def count(self, status: str) -> int:
        return sum(1 for r in self.receipts if r.status == status)

    @property
    def mutations(self) -> int:
        return sum(1 for r in self.receipts if r.mutated)

    @property
    def optional_failures(self) -> list[Receipt]:
        return [r for r in self.receipts if r.failed and r.optional]

    @property
    def status(self) -> str:
        return "failed" if self.error else "ok"

    def phase(self, name: str) -> PhaseResult | None:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def phase_names(self) -> list[str]:
        return [p.name for p in self.phases]

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "status": self.status,
            "dry_run": self.dry_run,
            "manifest": self.manifest_path,
            "platform": self.platform,
            "error": self.error,
            "counts": {
                "ok": self.count("ok"),
                "skipped": self.count("skipped"),
                "planned": self.count("planned"),
                "warnings": self.count("warning"),
                "failed": self.count("failed"),
            },
            "phases": [p.to_dict() for p in self.phases],
        }


class Orchestrator:
    """Runs one provisioning pass.

    Args:
        platform: The detected host.
        registry: Adapters for this platform (real or mock).
        options: Run flags.
        env: Starting process environment (default: this process's).
        fetch_key: Repository key downloader.
    """

    def __init__(
        self,
        platform: PlatformInfo,
        registry: AdapterRegistry,
        options: ProvisionOptions | None = None,
        *,
        env: ProcessEnvironment | None = None,
        fetch_key: KeyFetcher | None = None,
    ):
        self.platform = platform
        self.registry = registry
        self.options = options or ProvisionOptions()
        self.env = env or ProcessEnvironment.from_os()
        if fetch_key is None:
            fetch_key = (lambda url: _MOCK_KEY) if registry.mock_mode else fetch_url
        self.fetch_key = fetch_key
        self.report = ProvisionReport(
            operation_id=generate_operation_id(),
            dry_run=self.options.dry_run,
            platform=platform.model_dump(),
        )

    # ── Entry point ─────────────────────────────────────────────

    def run(self, manifest_path: Path | None = None, *, start_dir: Path | None = None) -> ProvisionReport:
        """Provision the machine from a manifest.

        Args:
            manifest_path: Explicit manifest; None uses the platform default
                found by searching upward from ``start_dir``.
            start_dir: Where discovery starts (default: cwd).

        Raises:
            DevstrapError: the first fatal error; ``self.report`` holds
                the receipts recorded up to that point.
        """
        with log_operation(self.report.operation_id):
            return self._run(manifest_path, start_dir=start_dir)

    def _run(self, manifest_path: Path | None, *, start_dir: Path | None) -> ProvisionReport:
        opts = self.options
        if opts.dry_run:
            logger.info("Dry-run: no changes will be made")

        with self._phase("preflight") as phase:
            check_platform_supported(self.platform, allow_native_linux=opts.allow_native_linux)
            phase.add(Receipt.note("platform", self.platform.system, _describe_platform(self.platform)))

        with self._phase("manifest") as phase:
            path = resolve_manifest_path(self.platform.system, manifest_path, start_dir)
            self.report.manifest_path = str(path)
            manifest = load_manifest(path, system=self.platform.system)
            phase.add(Receipt.note("manifest", path.name, "loaded", detail=manifest.summary()))
            pm = self.registry.package_manager(manifest.package_manager)
            if not opts.skip_packages and not pm.is_available(self.env):
                raise PreconditionError(
                    f"Package manager '{pm.name}' is not on PATH; install it or pass --skip-packages"
                )

        probe = CapabilityProbe(pm, self.registry.runtime_manager)
        installer = PackageInstaller(pm, probe, dry_run=opts.dry_run)

        if opts.skip_packages:
            with self._phase("packages") as phase:
                phase.add(Receipt.skip("phase", "packages", "--skip-packages"))
        else:
            self._package_phases(manifest, installer, probe)

        scripts = ScriptInstaller(self.registry.runner, dry_run=opts.dry_run)
        with self._phase("scripts:pre-runtime") as phase:
            phase.extend(scripts.run("pre-runtime", manifest.script_installs, self.env))

        self._refresh_env("env:pre-runtime")

        with self._phase("runtimes") as phase:
            if opts.skip_runtimes:
                phase.add(Receipt.skip("phase", "runtimes", "--skip-runtimes"))
            elif not manifest.runtimes:
                phase.add(Receipt.skip("phase", "runtimes", "no runtimes declared"))
            else:
                self._runtime_phase(manifest, probe, phase)

        with self._phase("scripts:post-runtime") as phase:
            phase.extend(scripts.run("post-runtime", manifest.script_installs, self.env))

        self._refresh_env("env:post-runtime")

        with self._phase("source") as phase:
            reconciler = ManagedSourceReconciler(
                self.registry.dotfiles_engine,
                force=opts.force_source,
                dry_run=opts.dry_run,
            )
            phase.extend(reconciler.reconcile(self._dotfiles_settings(manifest), self.env))

        with self._phase("shell") as phase:
            shell = LoginShellConfigurator(self.registry.runner, self.platform, dry_run=opts.dry_run)
            phase.add(shell.ensure(manifest.default_shell, self.env))

        logger.info(
            "Provisioning %s: %d changed, %d planned, %d warnings",
            "planned" if opts.dry_run else "complete",
            self.report.count("ok"),
            self.report.count("planned"),
            self.report.count("warning"),
        )
        return self.report

    # ── Phases ──────────────────────────────────────────────────

    def _package_phases(
        self,
        manifest: Manifest,
        installer: PackageInstaller,
        probe: CapabilityProbe,
    ) -> None:
        opts = self.options
        pm = installer.manager

        with self._phase("repositories") as phase:
            configurator = RepositoryConfigurator(
                self.platform,
                self.registry.runner,
                probe,
                fetch_key=self.fetch_key,
                root=self.registry.sandbox,
                dry_run=opts.dry_run,
            )
            phase.extend(configurator.ensure(manifest.repositories, self.env))
            repos_changed = any(r.status in ("ok", "planned") for r in phase.receipts)

        with self._phase("index") as phase:
            pending = installer.missing(
                list(manifest.system_packages) + list(manifest.optional_packages), self.env,
            )
            if repos_changed or pending:
                reason = "repositories changed" if repos_changed else f"{len(pending)} package(s) to install"
                phase.add(installer.refresh_index(self.env, reason=reason))
            else:
                phase.add(Receipt.skip("index", pm.name, "nothing to install"))

        with self._phase("packages") as phase:
            phase.extend(installer.install_mandatory(manifest.system_packages, self.env))

        with self._phase("optional") as phase:
            phase.extend(installer.install_optional(manifest.optional_packages, self.env))

    def _runtime_phase(self, manifest: Manifest, probe: CapabilityProbe, phase: PhaseResult) -> None:
        rm = self.registry.runtime_manager
        if not rm.is_available(self.env):
            if not self.options.dry_run:
                raise PreconditionError(
                    f"Runtimes are declared but {rm.name} is not on PATH; "
                    f"install {rm.name} first (e.g. with a pre-runtime script install)"
                )
            phase.add(Receipt.warn("runtime", rm.name, f"{rm.name} not on PATH"))
            for spec in manifest.runtimes:
                phase.add(Receipt.planned("runtime", spec.spec, f"{rm.name} use --global {spec.spec}"))
            return

        bridge = RuntimeBridge(rm, probe, dry_run=self.options.dry_run)
        for spec in manifest.runtimes:
            phase.add(bridge.ensure_runtime(spec, self.env))

        if any(r.status in ("ok", "planned") for r in phase.receipts):
            phase.add(bridge.reshim_all(self.env))

        self._swap_env(phase)

        if self.options.dry_run:
            phase.add(Receipt.warn("validate", "runtimes", "PATH validation skipped in dry-run"))
            return
        phase.extend(bridge.validate_on_path(manifest.runtimes, self.env))

    # ── Environment ─────────────────────────────────────────────

    def _refresh_env(self, name: str) -> None:
        with self._phase(name) as phase:
            self._swap_env(phase)

    def _swap_env(self, phase: PhaseResult) -> None:
        shims = self.registry.runtime_manager.shims_dir(self.platform.home_path)
        self.env, added = refresh_environment(self.env, self.platform, shims_dir=shims)
        if added:
            phase.add(Receipt.note("environment", "PATH", f"added {len(added)} entries", detail={"added": added}))
        else:
            phase.add(Receipt.note("environment", "PATH", "unchanged"))

    # ── Helpers ─────────────────────────────────────────────────

    def _dotfiles_settings(self, manifest: Manifest) -> DotfilesSettings:
        """Manifest ``dotfiles`` with CLI overrides applied."""
        settings = manifest.dotfiles
        opts = self.options
        if opts.dotfiles_repo:
            return settings.model_copy(update={"repo_url": opts.dotfiles_repo, "source_path": None})
        if opts.dotfiles_source:
            return settings.model_copy(update={"source_path": opts.dotfiles_source, "repo_url": None})
        return settings

    @contextmanager
    def _phase(self, name: str) -> Iterator[PhaseResult]:
        phase = PhaseResult(name=name)
        self.report.phases.append(phase)
        with log_phase(name):
            logger.debug("Phase %s", name)
            try:
                yield phase
            except ValidationFailure as exc:
                for item in exc.missing:
                    phase.add(Receipt.failure("validate", item["runtime"], str(exc), detail=item))
                self.report.error = str(exc)
                raise
            except MandatoryStepFailure as exc:
                phase.add(Receipt.failure(name, exc.entity or name, str(exc), detail={"diagnostic": exc.detail}))
                self.report.error = str(exc)
                raise
            except DevstrapError as exc:
                phase.add(Receipt.failure(name, name, str(exc)))
                self.report.error = str(exc)
                raise


def _describe_platform(platform: PlatformInfo) -> str:
    if platform.system == "linux":
        where = "WSL" if platform.is_wsl else "native"
        return f"{platform.distro_id or 'linux'} {platform.codename or '?'} ({platform.arch}, {where})"
    return f"{platform.system} ({platform.arch})"


def _log_receipt(phase: str, receipt: Receipt) -> None:
    marker = {
        "ok": "✓", "skipped": "⊘", "planned": "→", "warning": "!", "failed": "✗", "info": "·",
    }.get(receipt.status, "?")
    level = logging.WARNING if receipt.status in ("warning", "failed") else logging.INFO
    logger.log(level, "%s %s:%s → %s %s", marker, phase, receipt.entity, receipt.status, receipt.message)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
