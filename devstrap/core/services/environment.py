"""
Environment refresh — produce the next ProcessEnvironment at a phase boundary.

Script installers and runtime managers drop binaries into user-level
directories that this process's PATH has never heard of.  After each
phase the orchestrator calls ``refresh_environment`` and threads the
returned value into the next phase; the old value is discarded.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from devstrap.core.models.platform import PlatformInfo, ProcessEnvironment

logger = logging.getLogger(__name__)


def candidate_path_entries(
    platform: PlatformInfo,
    *,
    shims_dir: Path | None = None,
) -> list[str]:
    """Directories tools commonly install into, in priority order."""
    home = platform.home_path
    entries = [
        home / ".local" / "bin",
        home / ".cargo" / "bin",
        home / ".npm-global" / "bin",
    ]
    if shims_dir is not None:
        entries.append(shims_dir)
    if platform.system == "windows":
        entries.append(home / "scoop" / "shims")
    candidates = [str(p) for p in entries]
    if platform.system == "windows":
        candidates.extend(_persisted_windows_path())
    return candidates


def refresh_environment(
    env: ProcessEnvironment,
    platform: PlatformInfo,
    *,
    shims_dir: Path | None = None,
) -> tuple[ProcessEnvironment, list[str]]:
    """Return a new environment including newly-present tool directories.

    Returns:
        ``(environment, added_entries)``.
    """
    refreshed, added = env.with_path_entries(
        candidate_path_entries(platform, shims_dir=shims_dir)
    )
    if added:
        logger.info("Session PATH refreshed (added %d entries): %s", len(added), ", ".join(added))
    else:
        logger.debug("Session PATH already up to date")
    return refreshed, added


def _persisted_windows_path() -> list[str]:
    """Machine + User PATH as stored in the registry (Windows only)."""
    try:
        import winreg
    except ImportError:
        return []

    locations = (
        (winreg.HKEY_LOCAL_MACHINE, r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"),
        (winreg.HKEY_CURRENT_USER, r"Environment"),
    )
    entries: list[str] = []
    for hive, subkey in locations:
        try:
            with winreg.OpenKey(hive, subkey) as key:
                value, _ = winreg.QueryValueEx(key, "Path")
        except OSError:
            continue
        entries.extend(os.path.expandvars(p) for p in str(value).split(os.pathsep) if p)
    return entries
