"""
Managed-source models — where the dotfiles engine reads its source of truth.
"""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, ConfigDict

SourceKind = Literal["local", "remote"]
SourcePhase = Literal["unconfigured", "local-direct", "remote-initialized"]


class SourceDescriptor(BaseModel):
    """A local source directory or a remote git repository URL."""

    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    location: str

    @classmethod
    def local(cls, path: str) -> SourceDescriptor:
        return cls(kind="local", location=path)

    @classmethod
    def remote(cls, url: str) -> SourceDescriptor:
        return cls(kind="remote", location=url)

    def same_as(self, other: SourceDescriptor | None) -> bool:
        """Compare kind and location (paths normalised, URLs sans ``.git``/``/``)."""
        if other is None or other.kind != self.kind:
            return False
        if self.kind == "local":
            return _norm_path(self.location) == _norm_path(other.location)
        return _norm_url(self.location) == _norm_url(other.location)

    def __str__(self) -> str:
        return f"{self.kind}:{self.location}"


class ManagedSourceState(BaseModel):
    """Current and desired dotfiles source, as observed before reconciling.

    Attributes:
        desired: Source the operator asked for (None = keep whatever exists).
        current: Source the engine currently uses (None = unconfigured).
        source_dir: Directory the current source lives in on disk.
        default_dir: The engine's platform default source directory.
        has_managed_targets: Whether the current source already manages files.
    """

    model_config = ConfigDict(frozen=True)

    desired: SourceDescriptor | None = None
    current: SourceDescriptor | None = None
    source_dir: str = ""
    default_dir: str = ""
    has_managed_targets: bool = False

    @property
    def phase(self) -> SourcePhase:
        if self.current is None:
            return "unconfigured"
        if self.current.kind == "remote":
            return "remote-initialized"
        return "local-direct"

    @property
    def at_default_location(self) -> bool:
        return bool(self.source_dir) and _norm_path(self.source_dir) == _norm_path(self.default_dir)


def _norm_path(path: str) -> str:
    return os.path.normcase(os.path.normpath(os.path.expanduser(path)))


def _norm_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]
    return url.lower()
