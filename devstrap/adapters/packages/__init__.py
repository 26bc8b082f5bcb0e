"""Native package-manager adapters."""

from devstrap.adapters.packages.apt import AptPackageManager
from devstrap.adapters.packages.scoop import ScoopPackageManager
from devstrap.adapters.packages.winget import WingetPackageManager

__all__ = [
    "AptPackageManager",
    "ScoopPackageManager",
    "WingetPackageManager",
]
