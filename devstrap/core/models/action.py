"""
Receipt model — the outcome record of every reconciliation step.

Each component returns receipts rather than printing: one receipt per
entity it looked at (package, repository, script, runtime, source).
The orchestrator collects them per phase and the CLI renders them.

Statuses:
    ok       the step mutated the machine and succeeded
    skipped  the entity was already in the desired state (or out of scope)
    planned  dry-run: the step would have mutated the machine
    warning  non-fatal drift or gating; existing state was preserved
    failed   the step failed (fatal unless ``optional`` is set)
    info     an observation (platform, manifest, PATH, validation); no mutation
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ReceiptStatus = Literal["ok", "skipped", "planned", "warning", "failed", "info"]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of reconciling one entity."""

    kind: str                       # package, repository, script, runtime, source, ...
    entity: str                     # package name, repo name, runtime spec, ...
    status: ReceiptStatus = "ok"
    message: str = ""
    optional: bool = False
    duration_ms: int = 0
    at: str = Field(default_factory=_now_iso)
    detail: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def mutated(self) -> bool:
        """Whether this step changed machine state."""
        return self.status == "ok"

    @classmethod
    def done(cls, kind: str, entity: str, message: str = "", **kwargs: Any) -> Receipt:
        """A mutation that succeeded."""
        return cls(kind=kind, entity=entity, status="ok", message=message, **kwargs)

    @classmethod
    def skip(cls, kind: str, entity: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Nothing to do — already converged."""
        return cls(kind=kind, entity=entity, status="skipped", message=reason, **kwargs)

    @classmethod
    def planned(cls, kind: str, entity: str, action: str, **kwargs: Any) -> Receipt:
        """Dry-run report of a mutation that would have happened."""
        return cls(kind=kind, entity=entity, status="planned", message=action, **kwargs)

    @classmethod
    def warn(cls, kind: str, entity: str, message: str, **kwargs: Any) -> Receipt:
        """Non-fatal condition the operator should see."""
        return cls(kind=kind, entity=entity, status="warning", message=message, **kwargs)

    @classmethod
    def note(cls, kind: str, entity: str, message: str, **kwargs: Any) -> Receipt:
        """Informational record of something observed."""
        return cls(kind=kind, entity=entity, status="info", message=message, **kwargs)

    @classmethod
    def failure(cls, kind: str, entity: str, error: str, **kwargs: Any) -> Receipt:
        """A step that failed."""
        return cls(kind=kind, entity=entity, status="failed", message=error, **kwargs)
