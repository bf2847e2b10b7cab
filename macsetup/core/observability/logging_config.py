"""
Logging configuration — set up once by the CLI at process start.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
this config. Operator-facing output (the report) goes through click;
logging is for progress and diagnostics on stderr.

Level precedence:
    --debug / --verbose / --quiet  >  MACSETUP_LOG_LEVEL  >  WARNING

Optional file output via MACSETUP_LOG_FILE / MACSETUP_LOG_FILE_LEVEL.
A file log is useful on a fresh machine, where the terminal that ran
the setup is usually gone by the time something needs debugging.
"""

from __future__ import annotations

import logging
import os
import sys

# ── Format strings ──────────────────────────────────────────────

# WARNING and above: just the message
_FMT_PLAIN = "%(message)s"

# INFO: step progress with a timestamp
_FMT_PROGRESS = "%(asctime)s %(message)s"
_DATEFMT_PROGRESS = "%H:%M:%S"

# DEBUG and file output: full diagnostic with file:line
_FMT_DETAIL = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DETAIL = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get("MACSETUP_LOG_LEVEL", "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path of a log file (appended to).
        log_file_level: Level for the file. Defaults to DEBUG, since a
            file is only asked for when details matter.
    """
    console_level = _parse_level(level)

    if console_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DETAIL, _DATEFMT_DETAIL
    elif console_level <= logging.INFO:
        fmt, datefmt = _FMT_PROGRESS, _DATEFMT_PROGRESS
    else:
        fmt, datefmt = _FMT_PLAIN, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level or "DEBUG")
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FMT_DETAIL, datefmt=_DATEFMT_DETAIL))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name → numeric constant; unknown names fall back to WARNING."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
