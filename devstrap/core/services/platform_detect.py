"""
Platform detection — read-only probes of the host.

Answers "which OS, which distro release, which architecture, is this
WSL" once per run.  Used for precondition checks, manifest selection,
and repository placeholder rendering.
"""

from __future__ import annotations

import logging
import os
import platform as _platform
import shutil
import subprocess
from pathlib import Path

from devstrap.core.errors import PreconditionError
from devstrap.core.models.platform import PlatformInfo

logger = logging.getLogger(__name__)

_ARCH_MAP = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64", "armv7l": "armhf"}

_OS_RELEASE = Path("/etc/os-release")
_KERNEL_OSRELEASE = Path("/proc/sys/kernel/osrelease")


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``/etc/os-release`` content into a dict (quotes stripped)."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def detect_arch() -> str:
    """Architecture token in Debian form (``amd64``, ``arm64``...)."""
    if shutil.which("dpkg"):
        try:
            r = subprocess.run(
                ["dpkg", "--print-architecture"],
                capture_output=True, text=True, timeout=5,
            )
            if r.returncode == 0 and r.stdout.strip():
                return r.stdout.strip()
        except (subprocess.TimeoutExpired, OSError) as exc:
            logger.debug("dpkg --print-architecture failed: %s", exc)
    machine = _platform.machine().lower()
    return _ARCH_MAP.get(machine, machine)


def detect_wsl(
    environ: dict[str, str] | None = None,
    kernel_release_path: Path = _KERNEL_OSRELEASE,
) -> bool:
    """Whether the host is a WSL distribution."""
    environ = os.environ if environ is None else environ
    if environ.get("WSL_DISTRO_NAME") or environ.get("WSL_INTEROP"):
        return True
    try:
        release = kernel_release_path.read_text(encoding="utf-8").lower()
    except OSError:
        return False
    return "microsoft" in release or "wsl" in release


def detect_platform(
    *,
    os_release_path: Path = _OS_RELEASE,
    system: str | None = None,
) -> PlatformInfo:
    """Probe the running host."""
    raw_system = (system or _platform.system()).lower()
    home = str(Path.home())

    if raw_system == "windows":
        return PlatformInfo(system="windows", arch=detect_arch(), home=home)

    if raw_system != "linux":
        return PlatformInfo(
            system="darwin" if raw_system == "darwin" else "unknown",
            arch=detect_arch(),
            home=home,
        )

    try:
        release = parse_os_release(os_release_path.read_text(encoding="utf-8"))
    except OSError:
        logger.warning("%s not found; cannot detect Linux distro", os_release_path)
        release = {}

    return PlatformInfo(
        system="linux",
        distro_id=release.get("ID", "").lower(),
        distro_like=release.get("ID_LIKE", "").lower(),
        codename=(release.get("VERSION_CODENAME") or release.get("UBUNTU_CODENAME", "")).lower(),
        arch=detect_arch(),
        is_wsl=detect_wsl(),
        home=home,
    )


def check_platform_supported(info: PlatformInfo, *, allow_native_linux: bool = False) -> None:
    """Raise PreconditionError unless devstrap can provision this host."""
    if info.system == "windows":
        return
    if info.system != "linux":
        raise PreconditionError(
            f"Unsupported platform '{info.system}'. devstrap provisions Windows "
            "and Ubuntu/Debian under WSL2."
        )
    if not info.is_debian_family:
        raise PreconditionError(
            f"Unsupported distro (ID='{info.distro_id}', ID_LIKE='{info.distro_like}'). "
            "Linux provisioning targets Ubuntu/Debian."
        )
    if not info.is_wsl and not allow_native_linux:
        raise PreconditionError(
            "Linux provisioning is intended for WSL2. Run inside Ubuntu on WSL, "
            "or pass --allow-native-linux."
        )
