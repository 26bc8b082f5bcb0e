"""
Manifest check use case — validate a manifest and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from devstrap.core.config.loader import load_manifest, resolve_manifest_path
from devstrap.core.errors import LoadError
from devstrap.core.models.manifest import Manifest


@dataclass
class ManifestCheckResult:
    """Result of manifest validation."""

    valid: bool = False
    manifest: Manifest | None = None
    manifest_path: Path | None = None
    system: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "manifest_path": str(self.manifest_path) if self.manifest_path else None,
            "system": self.system,
            "errors": self.errors,
            "warnings": self.warnings,
            "summary": self.manifest.summary() if self.manifest else None,
        }


def check_manifest(
    manifest_path: Path | None = None,
    *,
    system: str,
    start_dir: Path | None = None,
) -> ManifestCheckResult:
    """Validate a manifest for ``system`` and report issues.

    Args:
        manifest_path: Optional explicit manifest (default: platform default).
        system: ``"linux"`` or ``"windows"``.
        start_dir: Where manifest discovery starts.

    Returns:
        ManifestCheckResult with validation status and any issues.
    """
    result = ManifestCheckResult(system=system)

    try:
        path = resolve_manifest_path(system, manifest_path, start_dir)
        result.manifest_path = path
        manifest = load_manifest(path, system=system)
        result.manifest = manifest
    except LoadError as e:
        result.errors.append(str(e))
        return result

    # Semantic checks
    if not manifest.system_packages:
        result.warnings.append("No systemPackages declared.")

    mandatory = {ref.identity for ref in manifest.system_packages}
    overlap = [str(ref) for ref in manifest.optional_packages if ref.identity in mandatory]
    if overlap:
        result.warnings.append(
            f"Listed as both mandatory and optional: {', '.join(overlap)}. "
            "They will be treated as mandatory."
        )

    for label, refs in (("systemPackages", manifest.system_packages), ("optionalPackages", manifest.optional_packages)):
        names = [str(r) for r in refs]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            result.warnings.append(f"Duplicate {label} entries: {', '.join(dupes)}")

    specs = [r.spec for r in manifest.runtimes]
    dupes = sorted({s for s in specs if specs.count(s) > 1})
    if dupes:
        result.warnings.append(f"Duplicate runtimes: {', '.join(dupes)}")

    if manifest.scripts_for("post-runtime") and not manifest.runtimes:
        result.warnings.append("post-runtime scriptInstalls declared but no runtimes.")

    result.valid = len(result.errors) == 0
    return result
