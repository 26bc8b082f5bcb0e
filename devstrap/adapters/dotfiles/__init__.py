"""Dotfiles-engine adapters."""

from devstrap.adapters.dotfiles.chezmoi import ChezmoiEngine

__all__ = ["ChezmoiEngine"]
