"""
Structured config patcher — key-level edits to TOML files via tomlkit.

The file is parsed once into a ``tomlkit.TOMLDocument``, which keeps
comments, ordering, whitespace and line endings.  Edits touch only the
keys devstrap owns, so everything else is written back byte-for-byte.

    doc = parse_document(read_document_text(path) or "")
    if upsert_section(doc, "data", {"name": "Ada"}):
        persist_with_backup(path, doc)

Every edit mutates ``doc`` in place and returns whether the rendered text
changed; an edit that renders identically must not be persisted.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import AoT

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


class ConfigParseError(ValueError):
    """The existing config file is not valid TOML."""


# ── Load ────────────────────────────────────────────────────────


def read_document_text(path: Path) -> str | None:
    """File content with its line endings intact, or None if missing."""
    try:
        return path.read_bytes().decode("utf-8")
    except FileNotFoundError:
        return None


def parse_document(text: str) -> tomlkit.TOMLDocument:
    try:
        return tomlkit.parse(text)
    except TOMLKitError as exc:
        raise ConfigParseError(str(exc)) from exc


# ── Edits ───────────────────────────────────────────────────────


def upsert_section(doc: tomlkit.TOMLDocument, name: str, values: Mapping[str, Any]) -> bool:
    """Set ``values`` inside ``[name]``, appending the table if absent.

    Keys in the table that are not in ``values`` are left alone.
    """
    before = doc.as_string()
    table = doc.get(name)
    if not _is_table(table):
        if name in doc:
            del doc[name]
        table = tomlkit.table()
        for key, value in values.items():
            table.add(key, value)
        doc.add(name, table)
        return doc.as_string() != before

    for key, value in values.items():
        if table.get(key) != value:
            table[key] = value
    return doc.as_string() != before


def upsert_top_level_key(doc: tomlkit.TOMLDocument, key: str, value: Any) -> bool:
    """Set a key that must live at the root, ahead of every table.

    tomlkit places a new root key after the last root-level value, so it
    never lands inside a table that follows.
    """
    before = doc.as_string()
    current = doc.get(key)
    if _is_table(current) or isinstance(current, AoT):
        del doc[key]
        current = None
    if current != value:
        doc[key] = value
    return doc.as_string() != before


def remove_top_level_key(doc: tomlkit.TOMLDocument, key: str) -> bool:
    """Drop a root-level value ``key``; tables of that name are kept."""
    if key in doc and not (_is_table(doc[key]) or isinstance(doc[key], AoT)):
        del doc[key]
        return True
    return False


def strip_key(doc: tomlkit.TOMLDocument, key: str) -> bool:
    """Remove every assignment of ``key`` nested inside any table.

    Used to drop legacy declarations before writing the canonical
    top-level key, so two contradictory values never coexist.
    """
    changed = False
    for item in list(doc.values()):
        changed = _strip_nested(item, key) or changed
    return changed


def _is_table(item: Any) -> bool:
    # Table, inline table, or a table split across the file
    return isinstance(item, MutableMapping)


def _strip_nested(item: Any, key: str) -> bool:
    if isinstance(item, AoT):
        return any([_strip_nested(table, key) for table in item])
    if not _is_table(item):
        return False
    changed = False
    if key in item:
        del item[key]
        changed = True
    for child in list(item.values()):
        changed = _strip_nested(child, key) or changed
    return changed


# ── Persistence ─────────────────────────────────────────────────


@dataclass(frozen=True)
class PersistResult:
    path: Path
    changed: bool
    written: bool
    backup_path: Path | None = None


def persist_with_backup(
    path: Path,
    doc: tomlkit.TOMLDocument,
    *,
    dry_run: bool = False,
    now: datetime | None = None,
) -> PersistResult:
    """Write ``doc`` to ``path`` if it differs, snapshotting the old file first.

    The previous content is copied to ``<path>.<YYYYMMDD-HHMMSS>.bak``
    before the new content replaces it (temp file + rename).  Lines
    added to a CRLF file get CRLF endings too.  Nothing is
    written, and no backup is made, when the rendered text matches what
    is on disk.
    """
    old_text = read_document_text(path)
    new_text = _match_line_endings(doc.as_string(), old_text)

    if old_text == new_text:
        logger.debug("%s unchanged; not writing", path)
        return PersistResult(path=path, changed=False, written=False)

    if dry_run:
        return PersistResult(path=path, changed=True, written=False)

    backup_path = None
    if old_text is not None:
        backup_path = _backup_path(path, now or datetime.now())
        shutil.copy2(path, backup_path)
        logger.info("Backed up %s → %s", path, backup_path)

    _atomic_write(path, new_text)
    return PersistResult(path=path, changed=True, written=True, backup_path=backup_path)


def _match_line_endings(text: str, previous: str | None) -> str:
    """Render added lines with CRLF when the file used CRLF throughout."""
    if previous and previous.count("\n") == previous.count("\r\n") > 0:
        return re.sub(r"(?<!\r)\n", "\r\n", text)
    return text


def _backup_path(path: Path, now: datetime) -> Path:
    stamp = now.strftime(BACKUP_TIMESTAMP_FORMAT)
    candidate = path.with_name(f"{path.name}.{stamp}.bak")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.{stamp}-{counter}.bak")
        counter += 1
    return candidate


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(content.encode("utf-8"))
        os.replace(tmp, path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
