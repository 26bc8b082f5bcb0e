"""
Logging configuration — one-time setup for the devstrap CLI.

Every module logs through ``logging.getLogger(__name__)``; this module
decides where records go and stamps each one with the provisioning
operation and phase it was emitted in, so a log file from a long run
reads as ``op-… repositories`` / ``op-… packages`` blocks.

Level precedence:
    --debug  >  --verbose  >  --quiet  >  DEVSTRAP_LOG_LEVEL  >  WARNING

A log file can be added with DEVSTRAP_LOG_FILE (and its own level with
DEVSTRAP_LOG_FILE_LEVEL).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# ── Format strings ──────────────────────────────────────────────

_FMT_MINIMAL = "%(message)s"

_FMT_VERBOSE = "%(asctime)s [%(phase)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

_FMT_DEBUG = "%(asctime)s %(levelname)-5s [%(phase)s] %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(operation)s [%(phase)s] %(name)s — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# ── Run context ─────────────────────────────────────────────────

_operation: ContextVar[str] = ContextVar("devstrap_operation", default="-")
_phase: ContextVar[str] = ContextVar("devstrap_phase", default="-")


class RunContextFilter(logging.Filter):
    """Adds ``operation`` and ``phase`` attributes to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation = _operation.get()
        record.phase = _phase.get()
        return True


@contextmanager
def log_operation(operation_id: str) -> Iterator[None]:
    token = _operation.set(operation_id)
    try:
        yield
    finally:
        _operation.reset(token)


@contextmanager
def log_phase(name: str) -> Iterator[None]:
    token = _phase.set(name)
    try:
        yield
    finally:
        _phase.reset(token)


# ── Setup ───────────────────────────────────────────────────────


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path of a log file to append to.
        log_file_level: Level for the file handler; defaults to ``level``.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    context = RunContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(context)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        fh.addFilter(context)
        root.addHandler(fh)

    root.setLevel(effective_level)
    logging.raiseExceptions = False


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> str:
    """Pick the console level name from CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level or "WARNING"


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
