"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from devstrap.adapters.mock import (
    MockCommandRunner,
    MockDotfilesEngine,
    MockPackageManager,
    MockRuntimeManager,
)
from devstrap.adapters.registry import AdapterRegistry
from devstrap.core.models.platform import PlatformInfo, ProcessEnvironment


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def platform(tmp_path: Path) -> PlatformInfo:
    """Ubuntu noble under WSL, with the home directory in ``tmp_path``."""
    home = tmp_path / "home"
    home.mkdir()
    return PlatformInfo(
        system="linux",
        distro_id="ubuntu",
        distro_like="debian",
        codename="noble",
        arch="amd64",
        is_wsl=True,
        home=str(home),
    )


@pytest.fixture
def env() -> ProcessEnvironment:
    """An empty environment: nothing from the host PATH leaks in."""
    return ProcessEnvironment(path=(), variables={}, cwd="")


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner(system="linux")


@pytest.fixture
def sandbox(tmp_path: Path) -> Path:
    root = tmp_path / "sandbox"
    root.mkdir()
    return root


@pytest.fixture
def registry(platform: PlatformInfo, runner: MockCommandRunner, sandbox: Path) -> AdapterRegistry:
    """Mock adapters for the ``platform`` fixture; files land in ``sandbox``."""
    return AdapterRegistry(
        package_managers={"apt": MockPackageManager("apt")},
        runtime_manager=MockRuntimeManager(sandbox / "mise" / "shims"),
        dotfiles_engine=MockDotfilesEngine(platform.home_path),
        runner=runner,
        mock_mode=True,
        sandbox=sandbox,
    )


@pytest.fixture
def write_manifest(tmp_path: Path):
    """Write a manifest dict as ``manifests/<name>`` under ``tmp_path``."""

    def _write(data: dict, name: str = "linux.ubuntu.packages.json") -> Path:
        manifest_dir = tmp_path / "manifests"
        manifest_dir.mkdir(exist_ok=True)
        path = manifest_dir / name
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path

    return _write
