"""
Tests for managed-source reconciliation — decide() transitions and the reconciler.
"""

from datetime import datetime
from pathlib import Path

import pytest

from devstrap.adapters.mock import MockDotfilesEngine
from devstrap.adapters.shell.command import CommandResult
from devstrap.core.errors import MandatoryStepFailure, PreconditionError
from devstrap.core.models.manifest import DotfilesSettings
from devstrap.core.models.source import ManagedSourceState, SourceDescriptor
from devstrap.core.services.engine_config import read_source_dir
from devstrap.core.services.managed_source import (
    ManagedSourceReconciler,
    backup_dir_path,
    decide,
    desired_source,
)

REPO = "https://github.com/me/dotfiles.git"


def _tree(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    (path / "dot_zshrc").write_text("# zsh\n")
    return path


@pytest.fixture
def home(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture
def engine(home: Path) -> MockDotfilesEngine:
    return MockDotfilesEngine(home)


def reconcile(engine, settings, env, **kw) -> list:
    return list(ManagedSourceReconciler(engine, **kw).reconcile(settings, env))


def statuses(receipts) -> list[tuple[str, str]]:
    return [(r.kind, r.status) for r in receipts]


# ── Pure transitions ─────────────────────────────────────────────────


class TestDecide:
    LOCAL_A = SourceDescriptor.local("/src/a")
    LOCAL_B = SourceDescriptor.local("/src/b")

    def test_unconfigured(self):
        assert decide(ManagedSourceState()).action == "skip"
        assert decide(ManagedSourceState(desired=self.LOCAL_A)).action == "init"

    def test_same_or_no_desire_keeps(self):
        assert decide(ManagedSourceState(desired=self.LOCAL_A, current=self.LOCAL_A)).action == "keep"
        assert decide(ManagedSourceState(current=self.LOCAL_A)).action == "keep"

    def test_remote_origin_drift_never_switches(self):
        state = ManagedSourceState(
            desired=SourceDescriptor.remote("https://b"),
            current=SourceDescriptor.remote("https://a"),
            has_managed_targets=False,
        )
        assert decide(state, force=True).action == "conflict"

    def test_nothing_managed_switches_without_moving_custom_dir(self):
        state = ManagedSourceState(
            desired=self.LOCAL_B, current=self.LOCAL_A, source_dir="/src/a", default_dir="/d",
        )
        decision = decide(state)
        assert decision.action == "switch"
        assert not decision.backup

    def test_nothing_managed_at_default_location_backs_up(self):
        state = ManagedSourceState(
            desired=self.LOCAL_B, current=SourceDescriptor.local("/d"), source_dir="/d", default_dir="/d",
        )
        decision = decide(state)
        assert decision.action == "switch"
        assert decision.backup

    def test_default_location_switches(self):
        state = ManagedSourceState(
            desired=self.LOCAL_B, current=SourceDescriptor.local("/d"),
            source_dir="/d", default_dir="/d", has_managed_targets=True,
        )
        assert decide(state).action == "switch"

    def test_custom_location_needs_force(self):
        state = ManagedSourceState(
            desired=self.LOCAL_B, current=self.LOCAL_A,
            source_dir="/src/a", default_dir="/d", has_managed_targets=True,
        )
        assert decide(state).action == "conflict"
        assert "--force-source" in decide(state).reason
        assert decide(state, force=True).action == "switch"

    def test_desired_source(self):
        assert desired_source(DotfilesSettings()) is None
        assert desired_source(DotfilesSettings(repo_url=REPO)).kind == "remote"
        assert desired_source(DotfilesSettings(source_path="/x")).location == "/x"


class TestBackupPath:
    def test_timestamped_and_unique(self, tmp_path: Path):
        now = datetime(2026, 3, 4, 5, 6, 7)
        src = tmp_path / "chezmoi"
        first = backup_dir_path(src, now)
        assert first.name == "chezmoi.backup-20260304-050607"
        first.mkdir()
        assert backup_dir_path(src, now).name == "chezmoi.backup-20260304-050607-1"


# ── Reconciler ───────────────────────────────────────────────────────


class TestNothingRequested:
    def test_skip_when_unconfigured(self, engine, env):
        receipts = reconcile(engine, DotfilesSettings(), env)
        assert statuses(receipts) == [("source", "skipped")]
        assert engine.calls == []
        assert not engine.config_path.exists()

    def test_existing_source_is_applied(self, engine, env):
        _tree(engine.default_source_dir)
        receipts = reconcile(engine, DotfilesSettings(), env)
        assert statuses(receipts)[0] == ("source", "skipped")
        assert ("apply", str(engine.default_source_dir)) in engine.calls


class TestLocalSource:
    def test_init_local(self, engine, env, tmp_path: Path):
        src = _tree(tmp_path / "dots")
        receipts = reconcile(engine, DotfilesSettings(source_path=str(src), name="Ada"), env)
        assert statuses(receipts) == [("config", "ok"), ("source", "ok"), ("apply", "ok")]
        assert read_source_dir(engine.config_path) == str(src)
        assert engine.calls == [("apply", str(src))]

    def test_rerun_keeps(self, engine, env, tmp_path: Path):
        src = _tree(tmp_path / "dots")
        settings = DotfilesSettings(source_path=str(src))
        reconcile(engine, settings, env)
        receipts = reconcile(engine, settings, env)
        assert statuses(receipts) == [("source", "skipped"), ("config", "skipped"), ("apply", "ok")]

    def test_missing_path(self, engine, env, tmp_path: Path):
        with pytest.raises(PreconditionError) as exc:
            reconcile(engine, DotfilesSettings(source_path=str(tmp_path / "nope")), env)
        assert "does not exist" in str(exc.value)

    def test_default_dir_clone_requested_as_local_is_kept(self, engine, env):
        default = _tree(engine.default_source_dir)
        engine.origins[str(default)] = REPO
        engine.managed[str(default)] = ["~/.zshrc"]
        receipts = reconcile(engine, DotfilesSettings(source_path=str(default)), env)
        assert statuses(receipts) == [("source", "skipped"), ("config", "ok"), ("apply", "ok")]
        assert (default / "dot_zshrc").exists()
        assert not list(default.parent.glob("chezmoi.backup-*"))
        assert engine.calls == [("apply", str(default))]

    def test_dry_run_writes_nothing(self, engine, env, tmp_path: Path):
        src = _tree(tmp_path / "dots")
        receipts = reconcile(engine, DotfilesSettings(source_path=str(src)), env, dry_run=True)
        assert [r.status for r in receipts] == ["planned", "planned", "planned"]
        assert not engine.config_path.exists()
        assert engine.calls == []


class TestSwitching:
    def _custom_current(self, engine, tmp_path: Path) -> Path:
        current = _tree(tmp_path / "custom-dots")
        engine.config_path.parent.mkdir(parents=True)
        engine.config_path.write_text(f'sourceDir = "{current}"\n')
        engine.managed[str(current)] = ["~/.zshrc"]
        return current

    def test_custom_source_with_targets_is_kept(self, engine, env, tmp_path: Path):
        current = self._custom_current(engine, tmp_path)
        wanted = _tree(tmp_path / "new-dots")
        receipts = reconcile(engine, DotfilesSettings(source_path=str(wanted)), env)
        assert receipts[0].status == "warning"
        assert receipts[0].detail["requested"] == f"local:{wanted}"
        assert read_source_dir(engine.config_path) == str(current)
        assert engine.calls == [("apply", str(current))]
        assert current.is_dir()

    def test_force_backs_up_and_switches(self, engine, env, tmp_path: Path):
        current = self._custom_current(engine, tmp_path)
        wanted = _tree(tmp_path / "new-dots")
        receipts = reconcile(engine, DotfilesSettings(source_path=str(wanted)), env, force=True)
        assert statuses(receipts) == [("backup", "ok"), ("config", "ok"), ("source", "ok"), ("apply", "ok")]
        assert not current.exists()
        backups = list(tmp_path.glob("custom-dots.backup-*"))
        assert len(backups) == 1
        assert (backups[0] / "dot_zshrc").exists()
        assert read_source_dir(engine.config_path) == str(wanted)

    def test_unmanaged_custom_source_stays_in_place(self, engine, env, tmp_path: Path):
        current = _tree(tmp_path / "alice-dotfiles")
        engine.config_path.parent.mkdir(parents=True)
        engine.config_path.write_text(f'sourceDir = "{current}"\n')
        wanted = _tree(tmp_path / "other")
        receipts = reconcile(engine, DotfilesSettings(source_path=str(wanted)), env)
        assert statuses(receipts) == [("config", "ok"), ("source", "ok"), ("apply", "ok")]
        assert (current / "dot_zshrc").exists()
        assert not list(tmp_path.glob("alice-dotfiles.backup-*"))
        assert read_source_dir(engine.config_path) == str(wanted)

    def test_default_location_is_replaced(self, engine, env, tmp_path: Path):
        _tree(engine.default_source_dir)
        engine.managed[str(engine.default_source_dir)] = ["~/.zshrc"]
        wanted = _tree(tmp_path / "dots")
        receipts = reconcile(engine, DotfilesSettings(source_path=str(wanted)), env)
        assert statuses(receipts)[0] == ("backup", "ok")
        assert not engine.default_source_dir.exists()
        assert read_source_dir(engine.config_path) == str(wanted)


class TestRemoteSource:
    def test_init_remote(self, engine, env):
        receipts = reconcile(engine, DotfilesSettings(repo_url=REPO), env)
        assert statuses(receipts) == [("config", "ok"), ("source", "ok"), ("apply", "ok")]
        assert engine.calls == [("init", REPO), ("apply", str(engine.default_source_dir))]
        assert read_source_dir(engine.config_path) is None

    def test_same_origin_keeps(self, engine, env):
        _tree(engine.default_source_dir)
        engine.origins[str(engine.default_source_dir)] = "https://github.com/me/dotfiles"
        receipts = reconcile(engine, DotfilesSettings(repo_url=REPO), env)
        assert receipts[0].status == "skipped"
        assert not any(op == "init" for op, _ in engine.calls)

    def test_origin_drift_warns_and_keeps(self, engine, env):
        _tree(engine.default_source_dir)
        engine.origins[str(engine.default_source_dir)] = "https://github.com/someone/else.git"
        receipts = reconcile(engine, DotfilesSettings(repo_url=REPO), env, force=True)
        assert receipts[0].status == "warning"
        assert "keeping existing origin" in receipts[0].message
        assert not any(op == "init" for op, _ in engine.calls)
        assert engine.default_source_dir.exists()

    def test_local_to_remote_switch(self, engine, env, tmp_path: Path):
        current = _tree(tmp_path / "local-dots")
        engine.config_path.parent.mkdir(parents=True)
        engine.config_path.write_text(f'sourceDir = "{current}"\n')
        receipts = reconcile(engine, DotfilesSettings(repo_url=REPO), env)
        assert ("init", REPO) in engine.calls
        assert statuses(receipts) == [("config", "ok"), ("source", "ok"), ("apply", "ok")]
        assert current.is_dir()
        assert read_source_dir(engine.config_path) is None


class TestEngineFailures:
    def test_engine_missing_with_request(self, home, env, tmp_path: Path):
        engine = MockDotfilesEngine(home, available=False)
        with pytest.raises(PreconditionError):
            reconcile(engine, DotfilesSettings(repo_url=REPO), env)

    def test_engine_missing_dry_run_warns(self, home, env):
        engine = MockDotfilesEngine(home, available=False)
        receipts = reconcile(engine, DotfilesSettings(repo_url=REPO), env, dry_run=True)
        assert statuses(receipts) == [("source", "warning")]

    def test_engine_missing_without_request(self, home, env):
        engine = MockDotfilesEngine(home, available=False)
        assert statuses(reconcile(engine, DotfilesSettings(), env)) == [("source", "skipped")]

    def test_apply_failure_is_fatal(self, home, env, tmp_path: Path):
        class BrokenApply(MockDotfilesEngine):
            def apply(self, source_dir, env):
                return CommandResult(command=["chezmoi", "apply"], returncode=1, stderr="template error")

        src = _tree(tmp_path / "dots")
        with pytest.raises(MandatoryStepFailure) as exc:
            reconcile(BrokenApply(home), DotfilesSettings(source_path=str(src)), env)
        assert exc.value.detail == "template error"
