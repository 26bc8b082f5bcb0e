"""Runtime-manager adapters."""

from devstrap.adapters.runtimes.mise import MiseRuntimeManager

__all__ = ["MiseRuntimeManager"]
