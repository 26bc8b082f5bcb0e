"""
Manifest loader — reads a platform manifest into the ``Manifest`` model.

This is the only entry point for turning a manifest file into typed
state.  It reads JSON or YAML (by extension), validates against the
Pydantic models with the running platform as context, and returns an
immutable ``Manifest``.  Every failure is a ``LoadError`` naming the
offending key; nothing partially valid gets through.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from devstrap.core.errors import LoadError
from devstrap.core.models.manifest import Manifest

logger = logging.getLogger(__name__)

MANIFEST_DIR = "manifests"

# Default manifest per platform
DEFAULT_MANIFESTS = {
    "linux": "linux.ubuntu.packages.json",
    "windows": "windows.packages.json",
}

# Manifests for distros devstrap does not provision
_REJECTED_LINUX_MANIFESTS = ("linux.arch.packages.json",)

_YAML_SUFFIXES = (".yml", ".yaml")


def find_repo_root(start_dir: Path | None = None) -> Path | None:
    """Nearest directory (walking up) that contains a ``manifests/`` dir."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        if (current / MANIFEST_DIR).is_dir():
            return current
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def find_manifest_file(system: str, start_dir: Path | None = None) -> Path | None:
    """Locate the default manifest for ``system``, searching upward.

    Args:
        system: ``"linux"`` or ``"windows"``.
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to the manifest, or None if not found.
    """
    name = DEFAULT_MANIFESTS.get(system)
    if name is None:
        return None
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):
        candidate = current / MANIFEST_DIR / name
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def resolve_manifest_path(
    system: str,
    manifest: Path | None = None,
    start_dir: Path | None = None,
) -> Path:
    """Turn a ``--manifest`` value (or None) into an existing file path.

    A relative override is tried as given, then relative to the repo root.

    Raises:
        LoadError: nothing found, or the override names an unsupported distro.
    """
    if manifest is None:
        found = find_manifest_file(system, start_dir)
        if found is None:
            expected = DEFAULT_MANIFESTS.get(system, "<platform>.packages.json")
            raise LoadError(
                f"No {MANIFEST_DIR}/{expected} found in this directory or any parent. "
                "Specify one with --manifest."
            )
        return found

    if system == "linux" and manifest.name in _REJECTED_LINUX_MANIFESTS:
        raise LoadError(
            f"Manifest '{manifest.name}' is not supported; Linux provisioning targets Ubuntu/Debian."
        )

    if manifest.is_file() or manifest.is_absolute():
        return manifest

    root = find_repo_root(start_dir)
    if root is not None and (root / manifest).is_file():
        return root / manifest
    return manifest


def parse_manifest_text(text: str, *, suffix: str = ".json", source: str = "<manifest>") -> dict[str, Any]:
    """Decode manifest text into a mapping (no validation)."""
    try:
        if suffix.lower() in _YAML_SUFFIXES:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LoadError(f"Invalid JSON in {source}: {e}") from e
    except yaml.YAMLError as e:
        raise LoadError(f"Invalid YAML in {source}: {e}") from e

    if not isinstance(data, dict):
        raise LoadError(f"Expected an object at the top of {source}, got {type(data).__name__}")
    return data


def load_manifest(path: Path, *, system: str | None = None) -> Manifest:
    """Load and validate a manifest.

    Args:
        path: Manifest file (``.json``, ``.yml`` or ``.yaml``).
        system: Platform the manifest must be valid for; None skips the
            per-platform ``packageManager`` check.

    Returns:
        Validated Manifest model.

    Raises:
        LoadError: If the file is missing, unreadable, or invalid.
    """
    if not path.is_file():
        raise LoadError(f"Manifest not found: {path}")

    logger.debug("Loading manifest from %s", path)

    try:
        raw = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise LoadError(f"Cannot read {path}: {e}") from e

    data = parse_manifest_text(raw, suffix=path.suffix, source=str(path))

    try:
        manifest = Manifest.model_validate(data, context={"system": system} if system else None)
    except ValidationError as e:
        raise LoadError(f"Invalid manifest {path}:\n{format_validation_error(e)}") from e

    logger.info(
        "Loaded manifest %s (%s: %d packages, %d optional, %d repositories, %d scripts, %d runtimes)",
        path.name,
        manifest.package_manager,
        len(manifest.system_packages),
        len(manifest.optional_packages),
        len(manifest.repositories),
        len(manifest.script_installs),
        len(manifest.runtimes),
    )
    return manifest


def format_validation_error(error: ValidationError) -> str:
    """One ``  key.path: message`` line per Pydantic error."""
    lines = []
    for item in error.errors():
        location = _format_loc(item.get("loc", ()))
        message = str(item.get("msg", "invalid value")).removeprefix("Value error, ")
        lines.append(f"  {location}: {message}" if location else f"  {message}")
    return "\n".join(lines)


def _format_loc(loc: tuple[Any, ...]) -> str:
    out = ""
    for part in loc:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out
