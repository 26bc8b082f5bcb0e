"""
Repository configurator — third-party apt sources (signing key + list line).

For each declared source:

    1. Render the source line for this machine ({arch}, {codename}).
    2. Skip with a warning if the codename allow-list excludes us.
    3. Keyring present AND line present in the list file → no-op.
    4. Otherwise fetch the key (fatal on failure), install it, and append
       the line to the list file unless it is already there.

Any source that changed (receipt ``ok``, or ``planned`` in dry-run)
makes the orchestrator refresh the package index before installs.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
import urllib.request
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from devstrap.adapters.shell.command import CommandRunner
from devstrap.core.errors import MandatoryStepFailure
from devstrap.core.models.action import Receipt
from devstrap.core.models.manifest import RepositorySource
from devstrap.core.models.platform import PlatformInfo, ProcessEnvironment
from devstrap.core.services.probe import CapabilityProbe, list_file_has_line

logger = logging.getLogger(__name__)

KeyFetcher = Callable[[str], bytes]

_ARMOR_MARKER = b"-----BEGIN PGP"


def fetch_url(url: str, timeout: int = 30) -> bytes:
    """Download ``url`` and return the body."""
    req = urllib.request.Request(url, headers={"User-Agent": "devstrap/1.0"})
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return resp.read()


class RepositoryConfigurator:
    """Idempotently provisions repository trust material.

    Args:
        platform: Supplies the ``{arch}`` and ``{codename}`` values.
        runner: Used for ``gpg --dearmor`` and privileged installs.
        probe: Answers "already configured?".
        fetch_key: Downloads a key URL; replaced in tests.
        root: Prefix for keyring and list paths (mock sandbox, tests).
        dry_run: Report planned actions without touching disk.
    """

    def __init__(
        self,
        platform: PlatformInfo,
        runner: CommandRunner,
        probe: CapabilityProbe,
        *,
        fetch_key: KeyFetcher = fetch_url,
        root: Path | None = None,
        dry_run: bool = False,
    ):
        self.platform = platform
        self.runner = runner
        self.probe = probe
        self.fetch_key = fetch_key
        self.root = root
        self.dry_run = dry_run

    def resolve(self, path: str) -> Path:
        """Where ``path`` lives on this run's filesystem."""
        if self.root is None:
            return Path(path)
        return self.root / Path(path).relative_to(Path(path).anchor)

    def ensure(
        self,
        repositories: Iterable[RepositorySource],
        env: ProcessEnvironment,
    ) -> Iterator[Receipt]:
        """Yield one receipt per source, in manifest order.

        Raises:
            MandatoryStepFailure: a key could not be fetched or installed.
        """
        for repo in repositories:
            yield self._ensure_one(repo, env)

    # ── One source ──────────────────────────────────────────────

    def _ensure_one(self, repo: RepositorySource, env: ProcessEnvironment) -> Receipt:
        codename = self.platform.codename
        if not repo.applies_to(codename):
            logger.warning(
                "Repository %s skipped: codename '%s' not in %s",
                repo.name, codename or "unknown", ", ".join(repo.codename_allow_list or ()),
            )
            return Receipt.warn(
                "repository", repo.name,
                f"skipped: codename '{codename or 'unknown'}' not in allow-list "
                f"({', '.join(repo.codename_allow_list or ())})",
            )

        line = repo.render_source_line(arch=self.platform.arch, codename=codename)
        keyring = self.resolve(repo.keyring_path)
        list_file = self.resolve(repo.list_path)
        state = self.probe.probe_repository(str(keyring), str(list_file), line)
        if state.configured:
            return Receipt.skip("repository", repo.name, "already configured")

        if self.dry_run:
            steps = []
            if not state.keyring_present:
                steps.append(f"install key from {repo.key_url} to {keyring}")
            if not state.line_present:
                steps.append(f"add '{line}' to {list_file}")
            return Receipt.planned("repository", repo.name, "; ".join(steps))

        start = time.monotonic()
        if not state.keyring_present:
            self._install_key(repo, keyring, env)
        if not list_file_has_line(list_file, line):
            self._append_line(repo, list_file, line, env)

        logger.info("Repository %s configured", repo.name)
        return Receipt.done(
            "repository", repo.name, "configured",
            duration_ms=int((time.monotonic() - start) * 1000),
            detail={"source_line": line},
        )

    # ── Mutations ───────────────────────────────────────────────

    def _install_key(self, repo: RepositorySource, keyring: Path, env: ProcessEnvironment) -> None:
        try:
            material = self.fetch_key(repo.key_url)
        except Exception as exc:
            raise MandatoryStepFailure(
                f"Failed to fetch signing key for repository '{repo.name}' from {repo.key_url}: {exc}",
                entity=repo.name,
                detail=str(exc),
            ) from exc
        if not material:
            raise MandatoryStepFailure(
                f"Signing key for repository '{repo.name}' is empty ({repo.key_url})",
                entity=repo.name,
            )

        if material.lstrip().startswith(_ARMOR_MARKER):
            material = self._dearmor(repo, material, env)

        self._install_file(repo.name, keyring, material, env)

    def _dearmor(self, repo: RepositorySource, armored: bytes, env: ProcessEnvironment) -> bytes:
        fd, out_name = tempfile.mkstemp(prefix="devstrap-key-", suffix=".gpg")
        os.close(fd)
        out = Path(out_name)
        try:
            result = self.runner.run(
                ["gpg", "--batch", "--yes", "--dearmor", "--output", str(out)],
                env=env,
                input_text=armored.decode("ascii", errors="replace"),
                timeout=60,
            )
            if not result.ok:
                raise MandatoryStepFailure(
                    f"gpg --dearmor failed for repository '{repo.name}'",
                    entity=repo.name,
                    detail=result.diagnostic(),
                )
            return out.read_bytes()
        finally:
            out.unlink(missing_ok=True)

    def _append_line(self, repo: RepositorySource, path: Path, line: str, env: ProcessEnvironment) -> None:
        try:
            existing = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            existing = ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        self._install_file(repo.name, path, (existing + line + "\n").encode("utf-8"), env)

    def _install_file(
        self,
        entity: str,
        dest: Path,
        content: bytes,
        env: ProcessEnvironment,
    ) -> None:
        """Write ``content`` to ``dest``, escalating with sudo if needed."""
        if _writable(dest):
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(content)
                os.chmod(tmp_name, 0o644)
                os.replace(tmp_name, dest)
            except OSError as exc:
                Path(tmp_name).unlink(missing_ok=True)
                raise MandatoryStepFailure(
                    f"Cannot write {dest} for repository '{entity}': {exc}",
                    entity=entity,
                ) from exc
            return

        fd, tmp_name = tempfile.mkstemp(prefix="devstrap-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
            result = self.runner.run(
                ["install", "-D", "-m", "0644", tmp_name, str(dest)],
                env=env,
                needs_sudo=True,
                timeout=120,
            )
        finally:
            Path(tmp_name).unlink(missing_ok=True)
        if not result.ok:
            raise MandatoryStepFailure(
                f"Cannot install {dest} for repository '{entity}'",
                entity=entity,
                detail=result.diagnostic(),
            )


def _writable(dest: Path) -> bool:
    if dest.exists():
        return os.access(dest, os.W_OK) and os.access(dest.parent, os.W_OK)
    parent = dest.parent
    while not parent.exists() and parent != parent.parent:
        parent = parent.parent
    return os.access(parent, os.W_OK)
