"""
apt adapter — Debian/Ubuntu system packages.

Installed checks read the local dpkg database only; ``apt-get`` is
invoked for mutations, through ``sudo`` when not running as root.
"""

from __future__ import annotations

import logging

from devstrap.adapters.base import PackageManager
from devstrap.adapters.shell.command import CommandResult
from devstrap.core.models.manifest import PackageReference
from devstrap.core.models.platform import ProcessEnvironment

logger = logging.getLogger(__name__)

_INSTALLED_STATUS = "install ok installed"


class AptPackageManager(PackageManager):
    """``apt-get`` + ``dpkg-query``."""

    executable = "apt-get"

    @property
    def name(self) -> str:
        return "apt"

    def is_installed(self, ref: PackageReference, env: ProcessEnvironment) -> bool:
        result = self.runner.run(
            ["dpkg-query", "-W", "-f=${Status}", ref.name],
            env=env,
            timeout=30,
        )
        if result.error:
            logger.warning("Package query failed for %s: %s", ref, result.error)
        return _INSTALLED_STATUS in result.stdout

    def install(self, ref: PackageReference, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(
            ["apt-get", "install", "-y", ref.name],
            env=env,
            needs_sudo=True,
        )

    def refresh_index(self, env: ProcessEnvironment) -> CommandResult:
        return self.runner.run(["apt-get", "update"], env=env, needs_sudo=True)

    def describe_install(self, ref: PackageReference) -> str:
        return f"sudo apt-get install -y {ref.name}"
