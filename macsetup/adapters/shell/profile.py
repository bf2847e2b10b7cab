"""
Profile editor — idempotent edits to shell profile files.

Two primitives:

    upsert_block           delete the marker-delimited block (if any),
                           then append a fresh copy at the end of the file
    append_line_if_absent  append a single line unless it already occurs
                           verbatim as a whole line

Text outside the managed markers is never modified: files are split on
``\n`` only, CRLF endings are kept, and bytes that are not valid UTF-8
round-trip through ``surrogateescape``. Writes go through a temporary
file and ``os.replace`` so a profile is never left half-written.
"""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from macsetup.adapters.base import Installer
from macsetup.core.errors import ProfileIoError
from macsetup.core.models.outcome import InstallResult, PresenceResult

logger = logging.getLogger(__name__)


class ManagedBlock(BaseModel):
    """A marker-delimited region of a text file owned by macsetup.

    The marker strings are a format contract: changing them orphans
    every block written with the old markers.
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    begin: str
    end: str
    body: tuple[str, ...] = ()


class ProfileEditor:
    """Marker-aware editor for shell profiles.

    ``writes`` counts the files actually written by this instance.
    """

    def __init__(self) -> None:
        self.writes = 0

    # ── Block operations ────────────────────────────────────────

    def upsert_block(
        self,
        path: Path,
        begin: str,
        end: str,
        body: list[str] | tuple[str, ...],
    ) -> None:
        """Replace (or create) the block between ``begin`` and ``end``.

        The block always ends up last in the file, preceded by one
        blank separator line. An unterminated block is removed through
        the end of the file.

        Raises:
            ProfileIoError: If the file cannot be read or written.
        """
        lines = read_lines(path)
        # At most one block per marker pair: drop stray duplicates too.
        while _find_line(lines, begin) is not None:
            lines = _remove_block(lines, begin, end)
        cr = _line_ending(lines)
        lines.extend(l + cr for l in ["", begin, *body, end])
        self._write_lines(path, lines)
        logger.info("Wrote managed block %r to %s", begin, path)

    def read_block(self, path: Path, begin: str, end: str) -> list[str] | None:
        """Return the body of the managed block, or None if absent."""
        lines = read_lines(path)
        start = _find_line(lines, begin)
        if start is None:
            return None
        stop = _find_line(lines, end, start + 1)
        if stop is None:
            stop = len(lines)
        return [_strip_cr(l) for l in lines[start + 1:stop]]

    def apply_block(self, block: ManagedBlock) -> None:
        self.upsert_block(block.path, block.begin, block.end, block.body)

    # ── Line operations ─────────────────────────────────────────

    def append_line_if_absent(
        self,
        path: Path,
        line: str,
        comment: str | None = None,
    ) -> bool:
        """Append ``line`` unless it is already present.

        Args:
            path: Target profile.
            line: Exact line to ensure.
            comment: Optional comment written above the line.

        Returns:
            True if the file was written, False if it was a no-op.

        Raises:
            ProfileIoError: If the file cannot be read or written.
        """
        lines = read_lines(path)
        if has_line(lines, line):
            logger.debug("Line already present in %s: %s", path, line)
            return False

        cr = _line_ending(lines)
        lines.append(cr)
        if comment:
            lines.append(comment + cr)
        lines.append(line + cr)
        self._write_lines(path, lines)
        logger.info("Appended line to %s: %s", path, line)
        return True

    # ── I/O ─────────────────────────────────────────────────────

    def _write_lines(self, path: Path, lines: list[str]) -> None:
        content = ("\n".join(lines) + "\n").encode("utf-8", "surrogateescape")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(content)
                mode = path.stat().st_mode & 0o7777 if path.exists() else 0o644
                os.chmod(tmp, mode)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise ProfileIoError(f"Cannot write {path}: {e}") from e
        self.writes += 1


# ── Profile mutations (declared on steps) ───────────────────────


class ProfileMutation(ABC):
    """A profile change a step applies after a successful install."""

    @property
    @abstractmethod
    def path(self) -> Path:
        """File this mutation writes to."""

    @abstractmethod
    def is_applied(self) -> bool:
        """Read-only check: is the change already in place?"""

    @abstractmethod
    def apply(self, editor: ProfileEditor) -> None:
        """Write the change. Raises ProfileIoError."""


class BlockMutation(ProfileMutation):
    """Ensure a ManagedBlock with the desired body."""

    def __init__(self, block: ManagedBlock):
        self.block = block

    @property
    def path(self) -> Path:
        return self.block.path

    def is_applied(self) -> bool:
        try:
            current = ProfileEditor().read_block(
                self.block.path, self.block.begin, self.block.end
            )
        except ProfileIoError:
            return False
        return current is not None and tuple(current) == self.block.body

    def apply(self, editor: ProfileEditor) -> None:
        editor.apply_block(self.block)

    def __repr__(self) -> str:
        return f"<BlockMutation {self.block.begin!r} in {self.block.path}>"


class LineMutation(ProfileMutation):
    """Ensure a single line is present somewhere in a file."""

    def __init__(self, path: Path, line: str, comment: str | None = None):
        self._path = path
        self.line = line
        self.comment = comment

    @property
    def path(self) -> Path:
        return self._path

    def is_applied(self) -> bool:
        try:
            return has_line(read_lines(self._path), self.line)
        except ProfileIoError:
            return False

    def apply(self, editor: ProfileEditor) -> None:
        editor.append_line_if_absent(self._path, self.line, comment=self.comment)

    def __repr__(self) -> str:
        return f"<LineMutation {self.line!r} in {self._path}>"


# ── Helpers ─────────────────────────────────────────────────────


def read_lines(path: Path) -> list[str]:
    """Lines of a profile split on ``\\n`` only; a CRLF line keeps its ``\\r``.

    Raises:
        ProfileIoError: If the file exists but cannot be read.
    """
    try:
        if not path.exists():
            return []
        text = path.read_bytes().decode("utf-8", "surrogateescape")
    except OSError as e:
        raise ProfileIoError(f"Cannot read {path}: {e}") from e
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def has_line(lines: list[str], line: str) -> bool:
    return any(_strip_cr(existing) == line for existing in lines)


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def _line_ending(lines: list[str]) -> str:
    # New lines follow the file's convention, judged by its first line.
    return "\r" if lines and lines[0].endswith("\r") else ""


def _find_line(lines: list[str], marker: str, start: int = 0) -> int | None:
    for i in range(start, len(lines)):
        if lines[i].rstrip() == marker:
            return i
    return None


def _remove_block(lines: list[str], begin: str, end: str) -> list[str]:
    """Drop the first begin..end block and the blank separator before it."""
    start = _find_line(lines, begin)
    if start is None:
        return lines
    stop = _find_line(lines, end, start + 1)
    stop = len(lines) - 1 if stop is None else stop
    if start > 0 and lines[start - 1].strip() == "":
        start -= 1
    return lines[:start] + lines[stop + 1:]


class ProfileOnlyInstaller(Installer):
    """Installer for capabilities that are nothing but profile changes.

    Succeeds without side effects; the step's mutations do the work.
    """

    def __init__(self, installer_name: str = "profile", notes: list[str] | None = None):
        self._name = installer_name
        self.notes = notes or []

    @property
    def name(self) -> str:
        return self._name

    def apply(self, current: PresenceResult) -> InstallResult:
        return InstallResult.success(current.version, notes=self.notes)
