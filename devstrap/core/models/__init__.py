"""
Domain models — value types shared by every layer.

    from devstrap.core.models import Manifest, Receipt, ProcessEnvironment
"""

from devstrap.core.models.action import Receipt, ReceiptStatus
from devstrap.core.models.manifest import (
    SUPPORTED_PACKAGE_MANAGERS,
    DotfilesSettings,
    Manifest,
    PackageReference,
    RepositorySource,
    RuntimeSpec,
    ScriptInstall,
)
from devstrap.core.models.platform import PlatformInfo, ProcessEnvironment
from devstrap.core.models.source import (
    ManagedSourceState,
    SourceDescriptor,
)

__all__ = [
    "DotfilesSettings",
    "ManagedSourceState",
    "Manifest",
    "PackageReference",
    "PlatformInfo",
    "ProcessEnvironment",
    "Receipt",
    "ReceiptStatus",
    "RepositorySource",
    "RuntimeSpec",
    "SUPPORTED_PACKAGE_MANAGERS",
    "ScriptInstall",
    "SourceDescriptor",
]
