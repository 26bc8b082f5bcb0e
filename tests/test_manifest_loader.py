"""
Tests for the manifest loader and the manifest check use case.
"""

import json
from pathlib import Path

import pytest

from devstrap.core.config.loader import (
    find_manifest_file,
    find_repo_root,
    load_manifest,
    parse_manifest_text,
    resolve_manifest_path,
)
from devstrap.core.errors import LoadError
from devstrap.core.use_cases.manifest_check import check_manifest


class TestDiscovery:
    def test_finds_platform_default_upward(self, tmp_path: Path, write_manifest):
        path = write_manifest({"packageManager": "apt"})
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_manifest_file("linux", nested) == path.resolve()
        assert find_repo_root(nested) == tmp_path.resolve()

    def test_windows_default_name(self, tmp_path: Path, write_manifest):
        path = write_manifest({"packageManager": "scoop"}, name="windows.packages.json")
        assert find_manifest_file("windows", tmp_path) == path.resolve()
        assert find_manifest_file("linux", tmp_path) is None

    def test_unknown_system(self, tmp_path: Path):
        assert find_manifest_file("darwin", tmp_path) is None

    def test_resolve_default_missing(self, tmp_path: Path):
        with pytest.raises(LoadError) as exc:
            resolve_manifest_path("linux", None, tmp_path)
        assert "linux.ubuntu.packages.json" in str(exc.value)

    def test_resolve_relative_to_repo_root(self, tmp_path: Path, write_manifest, monkeypatch):
        path = write_manifest({"packageManager": "apt"}, name="custom.json")
        nested = tmp_path / "deep"
        nested.mkdir()
        monkeypatch.chdir(nested)
        resolved = resolve_manifest_path("linux", Path("manifests/custom.json"), nested)
        assert resolved == path.resolve()

    def test_arch_manifest_rejected(self, tmp_path: Path):
        with pytest.raises(LoadError) as exc:
            resolve_manifest_path("linux", tmp_path / "manifests" / "linux.arch.packages.json")
        assert "Ubuntu/Debian" in str(exc.value)


class TestParsing:
    def test_json(self):
        assert parse_manifest_text('{"packageManager": "apt"}') == {"packageManager": "apt"}

    def test_yaml(self):
        data = parse_manifest_text("packageManager: apt\nsystemPackages:\n  - git\n", suffix=".yml")
        assert data["systemPackages"] == ["git"]

    def test_invalid_json(self):
        with pytest.raises(LoadError) as exc:
            parse_manifest_text("{nope", source="m.json")
        assert "Invalid JSON in m.json" in str(exc.value)

    def test_invalid_yaml(self):
        with pytest.raises(LoadError) as exc:
            parse_manifest_text("a: [1, 2", suffix=".yaml")
        assert "Invalid YAML" in str(exc.value)

    def test_top_level_must_be_object(self):
        with pytest.raises(LoadError) as exc:
            parse_manifest_text('["git"]')
        assert "Expected an object" in str(exc.value)


class TestLoadManifest:
    def test_load_valid(self, write_manifest):
        path = write_manifest({"packageManager": "apt", "systemPackages": ["git"]})
        manifest = load_manifest(path, system="linux")
        assert [str(p) for p in manifest.system_packages] == ["git"]

    def test_utf8_bom_accepted(self, tmp_path: Path):
        path = tmp_path / "m.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps({"packageManager": "winget"}).encode())
        assert load_manifest(path, system="windows").package_manager == "winget"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(LoadError) as exc:
            load_manifest(tmp_path / "nope.json")
        assert "Manifest not found" in str(exc.value)

    def test_error_names_key(self, write_manifest):
        path = write_manifest(
            {
                "packageManager": "apt",
                "repositories": [{"name": "gh", "keyUrl": "", "keyringPath": "k",
                                  "sourceLine": "deb x", "listPath": "l"}],
            }
        )
        with pytest.raises(LoadError) as exc:
            load_manifest(path, system="linux")
        message = str(exc.value)
        assert "repositories[0].keyUrl" in message
        assert "Value error" not in message

    def test_wrong_manager_for_platform(self, write_manifest):
        path = write_manifest({"packageManager": "scoop"})
        with pytest.raises(LoadError) as exc:
            load_manifest(path, system="linux")
        assert "packageManager" in str(exc.value)


class TestManifestCheck:
    def test_valid(self, tmp_path: Path, write_manifest):
        write_manifest({"packageManager": "apt", "systemPackages": ["git"]})
        result = check_manifest(system="linux", start_dir=tmp_path)
        assert result.valid
        assert result.errors == []
        assert result.to_dict()["summary"]["system_packages"] == 1

    def test_invalid(self, tmp_path: Path, write_manifest):
        write_manifest({"packageManager": "apt", "runtimes": ["node lts"]})
        result = check_manifest(system="linux", start_dir=tmp_path)
        assert not result.valid
        assert result.errors
        assert result.to_dict()["summary"] is None

    def test_warnings(self, tmp_path: Path, write_manifest):
        write_manifest(
            {
                "packageManager": "apt",
                "systemPackages": ["git", "git"],
                "optionalPackages": ["git"],
                "runtimes": ["node@lts", "node@lts"],
            }
        )
        result = check_manifest(system="linux", start_dir=tmp_path)
        assert result.valid
        text = "\n".join(result.warnings)
        assert "both mandatory and optional: git" in text
        assert "Duplicate systemPackages entries: git" in text
        assert "Duplicate runtimes: node@lts" in text

    def test_post_runtime_without_runtimes(self, tmp_path: Path, write_manifest):
        write_manifest(
            {
                "packageManager": "apt",
                "systemPackages": ["git"],
                "scriptInstalls": [
                    {"name": "x", "checkCommand": "c", "installCommand": "i", "phase": "post-runtime"}
                ],
            }
        )
        result = check_manifest(system="linux", start_dir=tmp_path)
        assert any("post-runtime" in w for w in result.warnings)

    def test_shipped_manifests_are_valid(self, project_root: Path):
        linux = check_manifest(project_root / "manifests" / "linux.ubuntu.packages.json", system="linux")
        windows = check_manifest(project_root / "manifests" / "windows.packages.json", system="windows")
        assert linux.valid, linux.errors
        assert windows.valid, windows.errors
