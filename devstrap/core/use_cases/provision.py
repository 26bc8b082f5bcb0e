"""
Provision use case — converge this machine to its manifest.

The full vertical slice from CLI intent to receipts: detect the
platform, pick real or mock adapters, run the orchestrator, and turn
any fatal ``DevstrapError`` into a result the CLI can render.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from devstrap.adapters.registry import AdapterRegistry
from devstrap.core.engine.orchestrator import Orchestrator, ProvisionOptions, ProvisionReport
from devstrap.core.errors import DevstrapError
from devstrap.core.models.platform import PlatformInfo, ProcessEnvironment
from devstrap.core.services.platform_detect import detect_platform
from devstrap.core.services.repositories import KeyFetcher

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Result of a provisioning run."""

    report: ProvisionReport | None = None
    platform: PlatformInfo | None = None
    mock_mode: bool = False
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        if self.mock_mode:
            result["mock"] = True
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def provision(
    manifest_path: Path | None = None,
    options: ProvisionOptions | None = None,
    *,
    mock_mode: bool = False,
    platform: PlatformInfo | None = None,
    registry: AdapterRegistry | None = None,
    env: ProcessEnvironment | None = None,
    fetch_key: KeyFetcher | None = None,
    start_dir: Path | None = None,
) -> ProvisionResult:
    """Provision the machine from a manifest.

    Args:
        manifest_path: Optional explicit manifest (default: platform default).
        options: Run flags (dry-run, skips, dotfiles overrides...).
        mock_mode: If True, use mock adapters; nothing external runs.
        platform: Pre-detected platform (default: probe the host).
        registry: Optional pre-configured adapter registry.
        env: Starting process environment.
        fetch_key: Repository key downloader override.
        start_dir: Where manifest discovery starts.

    Returns:
        ProvisionResult with the report, and ``error`` set on failure.
    """
    result = ProvisionResult(mock_mode=mock_mode)
    options = options or ProvisionOptions()

    platform = platform or detect_platform()
    result.platform = platform

    owned = registry is None
    if registry is None:
        registry = AdapterRegistry.for_platform(platform, mock_mode=mock_mode)
    result.mock_mode = registry.mock_mode

    orchestrator = Orchestrator(platform, registry, options, env=env, fetch_key=fetch_key)
    try:
        result.report = orchestrator.run(manifest_path, start_dir=start_dir)
    except DevstrapError as e:
        logger.error("Provisioning aborted: %s", e)
        result.error = str(e)
        result.error_type = type(e).__name__
        result.report = orchestrator.report
    finally:
        if owned:
            registry.close()

    return result
