"""
Error taxonomy — the fatal failures a provisioning run can raise.

Only fatal conditions are exceptions.  Optional-package failures and
managed-source drift are recorded as receipts (``failed`` with
``optional=True`` and ``warning`` respectively) and never raised.
"""

from __future__ import annotations


class DevstrapError(Exception):
    """Base class for every fatal provisioning error."""


class LoadError(DevstrapError):
    """The manifest is missing, unreadable, or structurally invalid."""


class PreconditionError(DevstrapError):
    """The platform, package manager, or a required tool is unsupported or absent."""


class MandatoryStepFailure(DevstrapError):
    """A required package, repository, or script install failed.

    Attributes:
        entity: Name of the package/repository/script that failed.
        detail: Captured diagnostic output (stderr tail), if any.
    """

    def __init__(self, message: str, *, entity: str = "", detail: str = ""):
        super().__init__(message)
        self.entity = entity
        self.detail = detail


class ValidationFailure(DevstrapError):
    """Declared runtimes do not resolve to commands after install.

    Attributes:
        missing: One entry per unresolved runtime, with the runtime spec,
            its derived command, and what the runtime manager reported.
    """

    def __init__(self, message: str, *, missing: list[dict[str, str]] | None = None):
        super().__init__(message)
        self.missing = missing or []
