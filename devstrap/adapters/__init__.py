"""Adapters — bindings to the external tools devstrap drives.

Public re-exports for convenient access.
"""

from devstrap.adapters.base import DotfilesEngine, PackageManager, RuntimeManager
from devstrap.adapters.mock import (
    MockCommandRunner,
    MockDotfilesEngine,
    MockPackageManager,
    MockRuntimeManager,
)
from devstrap.adapters.registry import AdapterRegistry
from devstrap.adapters.shell.command import CommandResult, CommandRunner

__all__ = [
    "AdapterRegistry",
    "CommandResult",
    "CommandRunner",
    "DotfilesEngine",
    "MockCommandRunner",
    "MockDotfilesEngine",
    "MockPackageManager",
    "MockRuntimeManager",
    "PackageManager",
    "RuntimeManager",
]
