"""
Manifest models — the typed, validated desired state of a workstation.

A manifest document (JSON or YAML, camelCase keys) is validated once at
load time into these immutable models.  Nothing downstream ever sees
the raw mapping.

Validation context:
    ``Manifest.model_validate(data, context={"system": "linux"})`` checks
    ``packageManager`` against the identifiers supported on that system.
"""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

SUPPORTED_PACKAGE_MANAGERS: dict[str, tuple[str, ...]] = {
    "linux": ("apt",),
    "windows": ("scoop", "winget"),
}

SOURCE_LINE_PLACEHOLDERS = frozenset({"arch", "codename"})

_PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")

# Manifest keys from older manifests, mapped to their current name
_LEGACY_KEYS = {
    "packages": "systemPackages",
    "aptRepositories": "repositories",
    "miseRuntimes": "runtimes",
}

# Runtime names whose executable differs from the runtime name
_RUNTIME_COMMANDS = {
    "rust": "rustc",
    "python": "python",
}


class _ManifestModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


def _require_text(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{what} must be a string")
    value = value.strip()
    if not value:
        raise ValueError(f"{what} must not be empty")
    return value


def _require_list(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{what} must be a list")
    return value


# ── Packages ────────────────────────────────────────────────────


class PackageReference(_ManifestModel):
    """A package name plus optional grouping qualifier.

    The qualifier is a Scoop bucket or a winget source; apt packages
    never carry one.  Identity is ``(qualifier, name)``.
    """

    name: str
    qualifier: str = ""

    @classmethod
    def parse(cls, raw: str) -> PackageReference:
        """Parse ``"qualifier/name"`` or ``"name"``."""
        text = _require_text(raw, "package reference")
        if "/" in text:
            qualifier, _, name = text.partition("/")
            qualifier, name = qualifier.strip(), name.strip()
            if not qualifier or not name:
                raise ValueError(f"malformed package reference '{text}'")
            return cls(name=name, qualifier=qualifier)
        return cls(name=text)

    @property
    def identity(self) -> tuple[str, str]:
        return (self.qualifier, self.name)

    def __str__(self) -> str:
        return f"{self.qualifier}/{self.name}" if self.qualifier else self.name


# ── Repositories ────────────────────────────────────────────────


class RepositorySource(_ManifestModel):
    """A third-party apt source: signing key plus one source-list line.

    ``source_line`` may use ``{arch}`` and ``{codename}`` placeholders.
    When ``codename_allow_list`` is set, the source only applies to those
    platform codenames.
    """

    name: str
    key_url: str
    keyring_path: str
    source_line: str
    list_path: str
    codename_allow_list: tuple[str, ...] | None = None

    @field_validator("name", "key_url", "keyring_path", "source_line", "list_path", mode="before")
    @classmethod
    def _non_empty(cls, value: Any, info: ValidationInfo) -> str:
        return _require_text(value, to_camel(info.field_name or "value"))

    @field_validator("source_line")
    @classmethod
    def _known_placeholders(cls, value: str) -> str:
        unknown = sorted(set(_PLACEHOLDER_RE.findall(value)) - SOURCE_LINE_PLACEHOLDERS)
        if unknown:
            raise ValueError(
                f"sourceLine uses unknown placeholder(s) {', '.join(unknown)}; "
                f"supported: {', '.join(sorted(SOURCE_LINE_PLACEHOLDERS))}"
            )
        return value

    @field_validator("codename_allow_list", mode="before")
    @classmethod
    def _codenames(cls, value: Any) -> tuple[str, ...] | None:
        if value is None:
            return None
        items = _require_list(value, "codenameAllowList")
        return tuple(_require_text(v, "codenameAllowList entry").lower() for v in items)

    def applies_to(self, codename: str) -> bool:
        """Whether this source is valid for the given platform codename."""
        if self.codename_allow_list is None:
            return True
        return codename.lower() in self.codename_allow_list

    def render_source_line(self, *, arch: str, codename: str) -> str:
        """Substitute platform placeholders into the source line."""
        values = {"arch": arch, "codename": codename}
        return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], self.source_line).strip()


# ── Script installs ─────────────────────────────────────────────

ScriptPhase = Literal["pre-runtime", "post-runtime"]


class ScriptInstall(_ManifestModel):
    """A custom installer guarded by its own idempotency predicate."""

    name: str
    check_command: str
    install_command: str
    phase: ScriptPhase = "pre-runtime"

    @field_validator("name", "check_command", "install_command", mode="before")
    @classmethod
    def _non_empty(cls, value: Any, info: ValidationInfo) -> str:
        return _require_text(value, to_camel(info.field_name or "value"))

    @field_validator("phase", mode="before")
    @classmethod
    def _phase(cls, value: Any) -> Any:
        if value is None:
            return "pre-runtime"
        if value not in ("pre-runtime", "post-runtime"):
            raise ValueError(f"phase must be 'pre-runtime' or 'post-runtime', got {value!r}")
        return value


# ── Runtimes ────────────────────────────────────────────────────


class RuntimeSpec(_ManifestModel):
    """A runtime-manager entry of the form ``name[@version]``."""

    spec: str

    @field_validator("spec", mode="before")
    @classmethod
    def _well_formed(cls, value: Any) -> str:
        text = _require_text(value, "runtime")
        if any(ch.isspace() for ch in text):
            raise ValueError(f"runtime '{text}' must not contain whitespace")
        name, _, _ = _split_spec(text)
        if not name:
            raise ValueError(f"runtime '{text}' has no name")
        return text

    @property
    def name(self) -> str:
        return _split_spec(self.spec)[0]

    @property
    def version(self) -> str:
        return _split_spec(self.spec)[2]

    @property
    def probe_command(self) -> str:
        """The executable that proves this runtime is usable."""
        key = self.name.lower()
        return _RUNTIME_COMMANDS.get(key, key)

    def __str__(self) -> str:
        return self.spec


def _split_spec(text: str) -> tuple[str, str, str]:
    idx = text.rfind("@")
    # A leading "@" belongs to a scoped name (npm:@scope/pkg), not a version
    if idx <= 0 or text[idx - 1] in ":/":
        return text, "", ""
    return text[:idx], "@", text[idx + 1:]


# ── Dotfiles ────────────────────────────────────────────────────


class DotfilesSettings(_ManifestModel):
    """Desired dotfiles source plus identity data for the engine config."""

    source_path: str | None = None
    repo_url: str | None = None
    name: str | None = None
    email: str | None = None

    @model_validator(mode="after")
    def _one_source(self) -> DotfilesSettings:
        if self.source_path and self.repo_url:
            raise ValueError("dotfiles: set either sourcePath or repoUrl, not both")
        return self

    @property
    def wants_source(self) -> bool:
        return bool(self.source_path or self.repo_url)


# ── Manifest ────────────────────────────────────────────────────


class Manifest(_ManifestModel):
    """The complete desired state for one platform."""

    package_manager: str
    system_packages: tuple[PackageReference, ...] = ()
    optional_packages: tuple[PackageReference, ...] = ()
    repositories: tuple[RepositorySource, ...] = ()
    script_installs: tuple[ScriptInstall, ...] = ()
    runtimes: tuple[RuntimeSpec, ...] = ()
    default_shell: str | None = None
    dotfiles: DotfilesSettings = Field(default_factory=DotfilesSettings)

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for legacy, current in _LEGACY_KEYS.items():
            if legacy in data and not data.get(current):
                data[current] = data[legacy]
            data.pop(legacy, None)
        return data

    @field_validator("package_manager", mode="before")
    @classmethod
    def _supported_manager(cls, value: Any, info: ValidationInfo) -> str:
        text = _require_text(value, "packageManager").lower()
        system = (info.context or {}).get("system")
        if system is not None:
            allowed = SUPPORTED_PACKAGE_MANAGERS.get(system, ())
            if text not in allowed:
                raise ValueError(
                    f"packageManager '{text}' is not supported on {system} "
                    f"(supported: {', '.join(allowed) or 'none'})"
                )
        elif not any(text in ids for ids in SUPPORTED_PACKAGE_MANAGERS.values()):
            raise ValueError(f"unknown packageManager '{text}'")
        return text

    @field_validator("system_packages", "optional_packages", mode="before")
    @classmethod
    def _package_list(cls, value: Any, info: ValidationInfo) -> tuple[PackageReference, ...]:
        key = to_camel(info.field_name or "packages")
        items = _require_list(value, key)
        if not all(isinstance(v, str) for v in items):
            raise ValueError(f"{key} must contain only strings")
        return tuple(PackageReference.parse(v) for v in items)

    @field_validator("repositories", "script_installs", mode="before")
    @classmethod
    def _object_list(cls, value: Any, info: ValidationInfo) -> list:
        key = to_camel(info.field_name or "items")
        items = _require_list(value, key)
        if not all(isinstance(v, dict) for v in items):
            raise ValueError(f"{key} must contain only objects")
        return items

    @field_validator("runtimes", mode="before")
    @classmethod
    def _runtime_list(cls, value: Any) -> tuple[RuntimeSpec, ...]:
        items = _require_list(value, "runtimes")
        if not all(isinstance(v, str) for v in items):
            raise ValueError("runtimes must contain only strings")
        return tuple(RuntimeSpec(spec=v) for v in items)

    @field_validator("default_shell", mode="before")
    @classmethod
    def _shell(cls, value: Any) -> str | None:
        if value is None:
            return None
        return _require_text(value, "defaultShell")

    @field_validator("dotfiles", mode="before")
    @classmethod
    def _dotfiles(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("dotfiles must be an object")
        return value

    @model_validator(mode="after")
    def _unique_names(self) -> Manifest:
        for label, names in (
            ("repositories", [r.name for r in self.repositories]),
            ("scriptInstalls", [s.name for s in self.script_installs]),
        ):
            dupes = sorted({n for n in names if names.count(n) > 1})
            if dupes:
                raise ValueError(f"duplicate {label} name(s): {', '.join(dupes)}")
        if self.repositories and self.package_manager != "apt":
            raise ValueError("repositories are only supported with packageManager 'apt'")
        if self.package_manager == "apt":
            qualified = [str(ref) for ref in self.system_packages + self.optional_packages if ref.qualifier]
            if qualified:
                raise ValueError(f"apt packages take no qualifier: {', '.join(qualified)}")
        return self

    def scripts_for(self, phase: ScriptPhase) -> list[ScriptInstall]:
        """Script installs of one phase, in manifest order."""
        return [s for s in self.script_installs if s.phase == phase]

    def summary(self) -> dict[str, int | str]:
        return {
            "package_manager": self.package_manager,
            "system_packages": len(self.system_packages),
            "optional_packages": len(self.optional_packages),
            "repositories": len(self.repositories),
            "script_installs": len(self.script_installs),
            "runtimes": len(self.runtimes),
        }
