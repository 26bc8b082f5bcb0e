"""
Managed-source reconciler — which source the dotfiles engine should use.

States (derived from the engine config and the source directory):

    unconfigured         no source directory, or an empty one
    local-direct(p)      the engine reads a local directory p
    remote-initialized   the source directory is a clone with an origin

Transitions, given a desired source:

    unconfigured        → init desired
    same as current     → no-op, apply
    remote → other url  → warn, keep origin, apply
    no managed targets  → switch (nothing to clobber)
    at default location → back up old tree, switch
    --force-source      → back up old tree, switch
    otherwise           → warn, keep current, apply

Switching never deletes.  A tree at the default location, or one replaced
under ``--force-source``, is renamed to ``<dir>.backup-<YYYYMMDD-HHMMSS>``
first; a custom directory that manages nothing is left where it is and
only the config pointer moves.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal

from devstrap.adapters.base import DotfilesEngine
from devstrap.core.errors import MandatoryStepFailure, PreconditionError
from devstrap.core.models.action import Receipt
from devstrap.core.models.manifest import DotfilesSettings
from devstrap.core.models.platform import ProcessEnvironment
from devstrap.core.models.source import ManagedSourceState, SourceDescriptor
from devstrap.core.services.engine_config import read_source_dir, write_engine_config

logger = logging.getLogger(__name__)

SourceAction = Literal["skip", "init", "keep", "switch", "conflict"]


@dataclass(frozen=True)
class SourceDecision:
    action: SourceAction
    reason: str
    backup: bool = False


def desired_source(settings: DotfilesSettings) -> SourceDescriptor | None:
    if settings.repo_url:
        return SourceDescriptor.remote(settings.repo_url)
    if settings.source_path:
        return SourceDescriptor.local(str(Path(settings.source_path).expanduser()))
    return None


def decide(state: ManagedSourceState, *, force: bool = False) -> SourceDecision:
    """Pure transition function over ``ManagedSourceState``."""
    desired, current = state.desired, state.current

    if current is None:
        if desired is None:
            return SourceDecision("skip", "no dotfiles source configured or requested")
        return SourceDecision("init", f"initialize {desired}")

    if desired is None or desired.same_as(current):
        return SourceDecision("keep", f"using {current}")

    if current.kind == "remote" and desired.kind == "remote":
        return SourceDecision(
            "conflict",
            f"source origin is {current.location}, requested {desired.location}; "
            "keeping existing origin",
        )

    if not state.has_managed_targets:
        return SourceDecision(
            "switch",
            f"{current} manages no files; switching to {desired}",
            backup=state.at_default_location,
        )

    if state.at_default_location:
        return SourceDecision("switch", f"replacing default source with {desired}", backup=True)

    if force and current.kind == "local":
        return SourceDecision("switch", f"--force-source: replacing {current} with {desired}", backup=True)

    return SourceDecision(
        "conflict",
        f"{current} already manages files and is not the default location; "
        f"keeping it (requested {desired}; pass --force-source to replace)",
    )


class ManagedSourceReconciler:
    """Observe, decide, and apply the dotfiles source.

    Args:
        engine: The dotfiles engine adapter.
        force: Operator acknowledgement for replacing a custom local source.
        dry_run: Observe and decide only.
    """

    def __init__(
        self,
        engine: DotfilesEngine,
        *,
        force: bool = False,
        dry_run: bool = False,
    ):
        self.engine = engine
        self.force = force
        self.dry_run = dry_run

    # ── Observe ─────────────────────────────────────────────────

    def observe(self, desired: SourceDescriptor | None, env: ProcessEnvironment) -> ManagedSourceState:
        configured = read_source_dir(self.engine.config_path)
        source_dir = Path(configured).expanduser() if configured else self.engine.default_source_dir
        default_dir = str(self.engine.default_source_dir)

        if not _has_content(source_dir):
            return ManagedSourceState(
                desired=desired, source_dir=str(source_dir), default_dir=default_dir,
            )

        # A clone only counts as remote when a remote source is wanted
        wants_remote = desired is not None and desired.kind == "remote"
        origin = self.engine.origin(source_dir, env) if wants_remote else None
        if origin:
            current = SourceDescriptor.remote(origin)
        else:
            current = SourceDescriptor.local(str(source_dir))

        return ManagedSourceState(
            desired=desired,
            current=current,
            source_dir=str(source_dir),
            default_dir=default_dir,
            has_managed_targets=bool(self.engine.managed_targets(source_dir, env)),
        )

    # ── Reconcile ───────────────────────────────────────────────

    def reconcile(self, settings: DotfilesSettings, env: ProcessEnvironment) -> Iterator[Receipt]:
        """Yield receipts for source selection, config, and apply.

        Raises:
            PreconditionError: a source is requested but the engine is missing,
                or a local source path does not exist.
            MandatoryStepFailure: init or apply failed.
        """
        desired = desired_source(settings)
        engine_name = self.engine.name

        if not self.engine.is_available(env):
            if desired is None:
                yield Receipt.skip("source", engine_name, f"{engine_name} not installed; nothing requested")
                return
            if self.dry_run:
                yield Receipt.warn("source", str(desired), f"{engine_name} not on PATH; would be required")
                return
            raise PreconditionError(f"{engine_name} is required to manage dotfiles source {desired} but is not on PATH")

        if desired is not None and desired.kind == "local" and not Path(desired.location).is_dir():
            raise PreconditionError(f"Dotfiles source path does not exist: {desired.location}")

        state = self.observe(desired, env)
        decision = decide(state, force=self.force)
        logger.info("Managed source: %s (%s)", decision.action, decision.reason)

        if decision.action == "skip":
            yield Receipt.skip("source", "dotfiles", decision.reason)
            return

        if decision.action == "conflict":
            logger.warning("Managed source drift: %s", decision.reason)
            yield Receipt.warn(
                "source", str(state.current), decision.reason,
                detail={"requested": str(desired)},
            )
            yield from self._write_config(settings, source_dir=None)
            yield self._apply(Path(state.source_dir), env)
            return

        if decision.action == "keep":
            yield Receipt.skip("source", str(state.current), decision.reason)
            yield from self._write_config(settings, source_dir=None)
            yield self._apply(Path(state.source_dir), env)
            return

        yield from self._select(desired, decision, state, settings, env)

    # ── Steps ───────────────────────────────────────────────────

    def _select(
        self,
        desired: SourceDescriptor,
        decision: SourceDecision,
        state: ManagedSourceState,
        settings: DotfilesSettings,
        env: ProcessEnvironment,
    ) -> Iterator[Receipt]:
        """Point the engine at ``desired`` (init or switch), then apply."""
        if decision.backup:
            yield from self._backup(Path(state.source_dir))

        if desired.kind == "local":
            yield from self._write_config(settings, source_dir=desired.location)
            if self.dry_run:
                yield Receipt.planned("source", str(desired), decision.reason)
            else:
                yield Receipt.done("source", str(desired), decision.reason)
            yield self._apply(Path(desired.location), env)
            return

        yield from self._write_config(settings, source_dir=None, clear_source_dir=True)
        yield self._init_remote(desired, decision, env)
        yield self._apply(self.engine.default_source_dir, env)

    def _write_config(
        self,
        settings: DotfilesSettings,
        *,
        source_dir: str | None,
        clear_source_dir: bool = False,
    ) -> Iterator[Receipt]:
        yield write_engine_config(
            self.engine.config_path,
            source_dir=source_dir,
            clear_source_dir=clear_source_dir,
            name=settings.name,
            email=settings.email,
            dry_run=self.dry_run,
        )

    def _backup(self, source_dir: Path) -> Iterator[Receipt]:
        if not _has_content(source_dir):
            return
        backup = backup_dir_path(source_dir)
        if self.dry_run:
            yield Receipt.planned("backup", str(source_dir), f"move to {backup}")
            return
        shutil.move(str(source_dir), str(backup))
        logger.info("Backed up %s → %s", source_dir, backup)
        yield Receipt.done("backup", str(source_dir), f"moved to {backup}", detail={"backup": str(backup)})

    def _init_remote(self, desired: SourceDescriptor, decision: SourceDecision, env: ProcessEnvironment) -> Receipt:
        if self.dry_run:
            return Receipt.planned("source", str(desired), f"{self.engine.name} init {desired.location}")
        result = self.engine.init_remote(desired.location, env)
        if not result.ok:
            raise MandatoryStepFailure(
                f"{self.engine.name} init {desired.location} failed",
                entity=desired.location,
                detail=result.diagnostic(),
            )
        return Receipt.done("source", str(desired), decision.reason, duration_ms=result.elapsed_ms)

    def _apply(self, source_dir: Path, env: ProcessEnvironment) -> Receipt:
        if self.dry_run:
            return Receipt.planned("apply", str(source_dir), f"{self.engine.name} apply")
        result = self.engine.apply(source_dir, env)
        if not result.ok:
            raise MandatoryStepFailure(
                f"{self.engine.name} apply failed for {source_dir}",
                entity=str(source_dir),
                detail=result.diagnostic(),
            )
        return Receipt.done("apply", str(source_dir), "managed files applied", duration_ms=result.elapsed_ms)


def backup_dir_path(source_dir: Path, now: datetime | None = None) -> Path:
    """``<dir>.backup-<YYYYMMDD-HHMMSS>``, suffixed if that already exists."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    candidate = source_dir.with_name(f"{source_dir.name}.backup-{stamp}")
    counter = 1
    while candidate.exists():
        candidate = source_dir.with_name(f"{source_dir.name}.backup-{stamp}-{counter}")
        counter += 1
    return candidate


def _has_content(path: Path) -> bool:
    try:
        return path.is_dir() and any(path.iterdir())
    except OSError:
        return False
