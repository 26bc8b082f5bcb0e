"""
Tests for domain models — manifest validation, receipts, environment, sources.
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from devstrap.core.models import (
    DotfilesSettings,
    ManagedSourceState,
    Manifest,
    PackageReference,
    PlatformInfo,
    ProcessEnvironment,
    Receipt,
    RepositorySource,
    RuntimeSpec,
    ScriptInstall,
    SourceDescriptor,
)


def _repo(**overrides) -> dict:
    data = {
        "name": "gh",
        "keyUrl": "https://example.invalid/key.gpg",
        "keyringPath": "/etc/apt/keyrings/gh.gpg",
        "sourceLine": "deb [arch={arch}] https://example.invalid {codename} main",
        "listPath": "/etc/apt/sources.list.d/gh.list",
    }
    data.update(overrides)
    return data


# ── Package references ───────────────────────────────────────────────


class TestPackageReference:
    def test_bare_name(self):
        ref = PackageReference.parse("git")
        assert ref.name == "git"
        assert ref.qualifier == ""
        assert str(ref) == "git"

    def test_qualified(self):
        ref = PackageReference.parse("extras/vscode")
        assert ref.qualifier == "extras"
        assert ref.name == "vscode"
        assert str(ref) == "extras/vscode"

    def test_identity_includes_qualifier(self):
        assert PackageReference.parse("main/git").identity != PackageReference.parse("git").identity

    def test_whitespace_trimmed(self):
        assert PackageReference.parse("  curl ").name == "curl"

    @pytest.mark.parametrize("raw", ["", "   ", "/vscode", "extras/"])
    def test_malformed(self, raw):
        with pytest.raises(ValueError):
            PackageReference.parse(raw)


# ── Runtimes ─────────────────────────────────────────────────────────


class TestRuntimeSpec:
    def test_name_and_version(self):
        spec = RuntimeSpec(spec="node@lts")
        assert spec.name == "node"
        assert spec.version == "lts"

    def test_no_version(self):
        spec = RuntimeSpec(spec="go")
        assert spec.name == "go"
        assert spec.version == ""

    def test_scoped_backend_name(self):
        spec = RuntimeSpec(spec="npm:@scope/tool@1.2")
        assert spec.name == "npm:@scope/tool"
        assert spec.version == "1.2"

    def test_probe_command_mapping(self):
        assert RuntimeSpec(spec="rust@stable").probe_command == "rustc"
        assert RuntimeSpec(spec="python@3.12").probe_command == "python"
        assert RuntimeSpec(spec="node@lts").probe_command == "node"

    @pytest.mark.parametrize("raw", ["", "   ", "node lts"])
    def test_rejects_malformed(self, raw):
        with pytest.raises(ValidationError):
            RuntimeSpec(spec=raw)


# ── Repositories ─────────────────────────────────────────────────────


class TestRepositorySource:
    def test_render_source_line(self):
        repo = RepositorySource.model_validate(_repo())
        line = repo.render_source_line(arch="arm64", codename="noble")
        assert line == "deb [arch=arm64] https://example.invalid noble main"

    def test_unknown_placeholder_rejected(self):
        with pytest.raises(ValidationError) as exc:
            RepositorySource.model_validate(_repo(sourceLine="deb {release} main"))
        assert "release" in str(exc.value)

    def test_empty_field_rejected(self):
        with pytest.raises(ValidationError) as exc:
            RepositorySource.model_validate(_repo(keyUrl="  "))
        assert "keyUrl" in str(exc.value)

    def test_allow_list(self):
        repo = RepositorySource.model_validate(_repo(codenameAllowList=["Jammy", "noble"]))
        assert repo.applies_to("noble")
        assert repo.applies_to("JAMMY")
        assert not repo.applies_to("focal")

    def test_no_allow_list_applies_everywhere(self):
        repo = RepositorySource.model_validate(_repo())
        assert repo.applies_to("anything")


# ── Scripts ──────────────────────────────────────────────────────────


class TestScriptInstall:
    def test_default_phase(self):
        s = ScriptInstall.model_validate({"name": "x", "checkCommand": "true", "installCommand": "true"})
        assert s.phase == "pre-runtime"

    def test_post_runtime(self):
        s = ScriptInstall.model_validate(
            {"name": "x", "checkCommand": "true", "installCommand": "true", "phase": "post-runtime"}
        )
        assert s.phase == "post-runtime"

    def test_bad_phase(self):
        with pytest.raises(ValidationError):
            ScriptInstall.model_validate(
                {"name": "x", "checkCommand": "true", "installCommand": "true", "phase": "later"}
            )


# ── Manifest ─────────────────────────────────────────────────────────


class TestManifest:
    def test_minimal(self):
        m = Manifest.model_validate({"packageManager": "apt"})
        assert m.package_manager == "apt"
        assert m.system_packages == ()
        assert m.dotfiles == DotfilesSettings()

    def test_full(self):
        m = Manifest.model_validate(
            {
                "packageManager": "apt",
                "systemPackages": ["git", "curl"],
                "optionalPackages": ["bat"],
                "repositories": [_repo()],
                "scriptInstalls": [
                    {"name": "mise", "checkCommand": "command -v mise", "installCommand": "x"},
                    {"name": "late", "checkCommand": "c", "installCommand": "i", "phase": "post-runtime"},
                ],
                "runtimes": ["node@lts"],
                "defaultShell": "zsh",
                "dotfiles": {"repoUrl": "https://example.invalid/dots.git", "name": "Ada"},
            },
            context={"system": "linux"},
        )
        assert [str(p) for p in m.system_packages] == ["git", "curl"]
        assert [s.name for s in m.scripts_for("pre-runtime")] == ["mise"]
        assert [s.name for s in m.scripts_for("post-runtime")] == ["late"]
        assert m.dotfiles.repo_url == "https://example.invalid/dots.git"
        assert m.summary()["runtimes"] == 1

    def test_manager_checked_against_system(self):
        with pytest.raises(ValidationError) as exc:
            Manifest.model_validate({"packageManager": "apt"}, context={"system": "windows"})
        assert "not supported on windows" in str(exc.value)

    def test_unknown_manager_without_context(self):
        with pytest.raises(ValidationError):
            Manifest.model_validate({"packageManager": "brew"})

    def test_manager_case_insensitive(self):
        assert Manifest.model_validate({"packageManager": "Scoop"}).package_manager == "scoop"

    def test_packages_must_be_strings(self):
        with pytest.raises(ValidationError) as exc:
            Manifest.model_validate({"packageManager": "apt", "systemPackages": ["git", 3]})
        assert "systemPackages" in str(exc.value)

    def test_packages_must_be_list(self):
        with pytest.raises(ValidationError):
            Manifest.model_validate({"packageManager": "apt", "systemPackages": "git"})

    def test_legacy_keys(self):
        m = Manifest.model_validate(
            {"packageManager": "apt", "packages": ["git"], "miseRuntimes": ["go"]}
        )
        assert [str(p) for p in m.system_packages] == ["git"]
        assert [r.spec for r in m.runtimes] == ["go"]

    def test_canonical_key_wins_over_legacy(self):
        m = Manifest.model_validate(
            {"packageManager": "apt", "packages": ["old"], "systemPackages": ["new"]}
        )
        assert [str(p) for p in m.system_packages] == ["new"]

    def test_duplicate_script_names(self):
        with pytest.raises(ValidationError) as exc:
            Manifest.model_validate(
                {
                    "packageManager": "apt",
                    "scriptInstalls": [
                        {"name": "a", "checkCommand": "c", "installCommand": "i"},
                        {"name": "a", "checkCommand": "c", "installCommand": "i"},
                    ],
                }
            )
        assert "duplicate scriptInstalls" in str(exc.value)

    def test_repositories_need_apt(self):
        with pytest.raises(ValidationError) as exc:
            Manifest.model_validate({"packageManager": "scoop", "repositories": [_repo()]})
        assert "only supported with packageManager 'apt'" in str(exc.value)

    def test_apt_rejects_qualified_packages(self):
        with pytest.raises(ValidationError) as exc:
            Manifest.model_validate({"packageManager": "apt", "optionalPackages": ["git", "foo/bar"]})
        assert "apt packages take no qualifier: foo/bar" in str(exc.value)

    def test_scoop_keeps_bucket_qualifier(self):
        m = Manifest.model_validate({"packageManager": "scoop", "systemPackages": ["extras/vscode"]})
        assert m.system_packages[0].qualifier == "extras"

    def test_dotfiles_one_source(self):
        with pytest.raises(ValidationError):
            Manifest.model_validate(
                {"packageManager": "apt", "dotfiles": {"sourcePath": "/a", "repoUrl": "https://b"}}
            )

    def test_frozen(self):
        m = Manifest.model_validate({"packageManager": "apt"})
        with pytest.raises(ValidationError):
            m.package_manager = "scoop"


# ── Receipts ─────────────────────────────────────────────────────────


class TestReceipt:
    def test_constructors(self):
        assert Receipt.done("package", "git").status == "ok"
        assert Receipt.skip("package", "git", "present").message == "present"
        assert Receipt.planned("package", "git", "apt-get install git").status == "planned"
        assert Receipt.warn("source", "x", "drift").status == "warning"
        assert Receipt.note("platform", "linux", "ubuntu").status == "info"
        assert Receipt.failure("package", "git", "404").failed

    def test_only_ok_mutates(self):
        assert Receipt.done("package", "git").mutated
        for receipt in (
            Receipt.skip("package", "git"),
            Receipt.planned("package", "git", "x"),
            Receipt.note("platform", "linux", "x"),
        ):
            assert not receipt.mutated

    def test_serializes(self):
        data = Receipt.failure("package", "bat", "404", optional=True).model_dump(mode="json")
        assert data["optional"] is True
        assert data["status"] == "failed"
        assert data["at"]


# ── Platform & environment ───────────────────────────────────────────


class TestPlatformInfo:
    @pytest.mark.parametrize(
        ("distro_id", "like", "expected"),
        [
            ("ubuntu", "debian", True),
            ("debian", "", True),
            ("elementary", "ubuntu debian", True),
            ("arch", "", False),
            ("fedora", "rhel fedora", False),
        ],
    )
    def test_debian_family(self, distro_id, like, expected):
        info = PlatformInfo(system="linux", distro_id=distro_id, distro_like=like)
        assert info.is_debian_family is expected


class TestProcessEnvironment:
    def test_prepends_existing_dirs_only(self, tmp_path: Path):
        present = tmp_path / "bin"
        present.mkdir()
        env = ProcessEnvironment(path=("/usr/bin",))
        new_env, added = env.with_path_entries([str(present), str(tmp_path / "missing")])
        assert added == [str(present)]
        assert new_env.path == (str(present), "/usr/bin")
        assert env.path == ("/usr/bin",)

    def test_no_duplicates(self, tmp_path: Path):
        env = ProcessEnvironment(path=(str(tmp_path),))
        new_env, added = env.with_path_entries([str(tmp_path)])
        assert added == []
        assert new_env is env

    def test_as_env_rebuilds_path(self):
        env = ProcessEnvironment(path=("/a", "/b"), variables={"HOME": "/h", "PATH": "/old"})
        assert env.as_env()["PATH"] == os.pathsep.join(["/a", "/b"])
        assert env.as_env()["HOME"] == "/h"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX executables")
    def test_which_uses_own_path(self, tmp_path: Path):
        tool = tmp_path / "mytool"
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)
        assert ProcessEnvironment(path=(str(tmp_path),)).which("mytool") == str(tool)
        assert ProcessEnvironment(path=()).which("mytool") is None


# ── Managed source ───────────────────────────────────────────────────


class TestSourceDescriptor:
    def test_url_normalization(self):
        a = SourceDescriptor.remote("https://github.com/me/dots.git")
        b = SourceDescriptor.remote("https://github.com/Me/dots/")
        assert a.same_as(b)

    def test_path_normalization(self):
        a = SourceDescriptor.local("/home/me/dots/")
        b = SourceDescriptor.local("/home/me/./dots")
        assert a.same_as(b)

    def test_kind_matters(self):
        assert not SourceDescriptor.local("/x").same_as(SourceDescriptor.remote("/x"))
        assert not SourceDescriptor.local("/x").same_as(None)

    def test_str(self):
        assert str(SourceDescriptor.remote("u")) == "remote:u"


class TestManagedSourceState:
    def test_phases(self):
        assert ManagedSourceState().phase == "unconfigured"
        assert ManagedSourceState(current=SourceDescriptor.local("/a")).phase == "local-direct"
        assert ManagedSourceState(current=SourceDescriptor.remote("u")).phase == "remote-initialized"

    def test_at_default_location(self):
        state = ManagedSourceState(source_dir="/h/.local/share/chezmoi/", default_dir="/h/.local/share/chezmoi")
        assert state.at_default_location
