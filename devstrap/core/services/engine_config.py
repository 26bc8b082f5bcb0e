"""
Dotfiles engine config — the sections devstrap owns in ``chezmoi.toml``.

Three things are written, everything else in the file is left alone:

    sourceDir = "..."                  top-level, before any table
    [data]      name / email           identity for templates
    [template]  options                missing keys render as empty
"""

from __future__ import annotations

import logging
from pathlib import Path

import tomlkit

from devstrap.core.errors import PreconditionError
from devstrap.core.models.action import Receipt
from devstrap.core.services.toml_document import (
    ConfigParseError,
    parse_document,
    persist_with_backup,
    read_document_text,
    remove_top_level_key,
    strip_key,
    upsert_section,
    upsert_top_level_key,
)

logger = logging.getLogger(__name__)

SOURCE_DIR_KEY = "sourceDir"
TEMPLATE_OPTIONS = {"options": ["missingkey=zero"]}


def read_source_dir(config_path: Path) -> str | None:
    """The ``sourceDir`` currently configured, or None.

    A missing file, a missing key, or a file that is not valid TOML all
    mean "no configured source"; the last one is logged as a warning.
    """
    try:
        text = read_document_text(config_path)
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read %s: %s", config_path, exc)
        return None
    if text is None:
        return None
    try:
        doc = parse_document(text)
    except ConfigParseError as exc:
        logger.warning("%s is not valid TOML (%s); treating source as unconfigured", config_path, exc)
        return None
    value = doc.get(SOURCE_DIR_KEY)
    return str(value) if isinstance(value, str) and value.strip() else None


def apply_engine_sections(
    doc: tomlkit.TOMLDocument,
    *,
    source_dir: str | None = None,
    clear_source_dir: bool = False,
    name: str | None = None,
    email: str | None = None,
) -> bool:
    """Upsert the owned sections into ``doc``; True if anything changed.

    ``clear_source_dir`` removes any ``sourceDir`` so the engine falls back
    to its default directory (remote sources are cloned there).
    """
    changed = False

    if source_dir is not None:
        changed = strip_key(doc, SOURCE_DIR_KEY) or changed
        changed = upsert_top_level_key(doc, SOURCE_DIR_KEY, source_dir) or changed
    elif clear_source_dir:
        changed = strip_key(doc, SOURCE_DIR_KEY) or changed
        changed = remove_top_level_key(doc, SOURCE_DIR_KEY) or changed

    identity = {}
    if name:
        identity["name"] = name
    if email:
        identity["email"] = email
    if identity:
        changed = upsert_section(doc, "data", identity) or changed

    return upsert_section(doc, "template", TEMPLATE_OPTIONS) or changed


def write_engine_config(
    config_path: Path,
    *,
    source_dir: str | None = None,
    clear_source_dir: bool = False,
    name: str | None = None,
    email: str | None = None,
    dry_run: bool = False,
) -> Receipt:
    """Bring ``config_path`` up to date; back up and rewrite only on change.

    Raises:
        PreconditionError: the existing file is not valid TOML.
    """
    try:
        doc = parse_document(read_document_text(config_path) or "")
    except ConfigParseError as exc:
        raise PreconditionError(
            f"{config_path} is not valid TOML ({exc}); fix or remove it before provisioning"
        ) from exc

    changed = apply_engine_sections(
        doc,
        source_dir=source_dir,
        clear_source_dir=clear_source_dir,
        name=name,
        email=email,
    )
    entity = str(config_path)
    if not changed:
        return Receipt.skip("config", entity, "engine config already up to date")

    if dry_run:
        return Receipt.planned("config", entity, f"update {config_path}")

    result = persist_with_backup(config_path, doc)
    if not result.written:
        return Receipt.skip("config", entity, "engine config already up to date")
    detail = {"backup": str(result.backup_path)} if result.backup_path else {}
    logger.info("Engine config written: %s", config_path)
    return Receipt.done("config", entity, "engine config updated", detail=detail)
