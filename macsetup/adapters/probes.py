"""
Built-in state probes.

Read-only checks: executables on PATH, commands that succeed, files
or directories that exist. None of them writes anything, and none
raises for "not found".
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path

from macsetup.adapters.base import StateProbe
from macsetup.adapters.shell.profile import ProfileMutation
from macsetup.core.errors import ProbeError
from macsetup.core.models.outcome import PresenceResult
from macsetup.core.models.step import Capability

logger = logging.getLogger(__name__)

_SEMVER = r"(\d+\.\d+(?:\.\d+)?)"


def read_version(cmd: list[str], pattern: str = _SEMVER, timeout: int = 10) -> str | None:
    """Run a ``--version`` style command and extract the version.

    Returns None if the binary is missing, the command fails, or the
    output doesn't match. Some tools print to stderr, so both streams
    are searched.
    """
    if not cmd or not shutil.which(cmd[0]):
        return None
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug("Version command %s failed: %s", cmd, e)
        return None
    output = (result.stdout or "") + (result.stderr or "")
    match = re.search(pattern, output)
    return match.group(1) if match else None


class ExecutableProbe(StateProbe):
    """Present iff ``binary`` resolves on PATH; version from its output.

    ``fallback`` is checked when PATH has no match, for tools whose
    install location is known before the shell profile puts it on PATH.
    """

    def __init__(
        self,
        binary: str,
        version_args: list[str] | None = None,
        pattern: str = _SEMVER,
        fallback: Path | None = None,
    ):
        self.binary = binary
        self.version_args = ["--version"] if version_args is None else version_args
        self.pattern = pattern
        self.fallback = fallback

    def probe(self, capability: Capability) -> PresenceResult:
        path = shutil.which(self.binary)
        if path is None and self.fallback is not None and os.access(self.fallback, os.X_OK):
            path = str(self.fallback)
        if path is None:
            return PresenceResult.absent(f"{self.binary} not on PATH")
        version = read_version([path, *self.version_args], self.pattern)
        return PresenceResult.found(version, detail=path)

    def __repr__(self) -> str:
        return f"<ExecutableProbe {self.binary!r}>"


class CommandProbe(StateProbe):
    """Present iff ``cmd`` exits 0.

    A missing binary means absent. ``version_cmd`` optionally supplies
    the version once presence is established.
    """

    def __init__(
        self,
        cmd: list[str],
        version_cmd: list[str] | None = None,
        pattern: str = _SEMVER,
        timeout: int = 30,
    ):
        self.cmd = cmd
        self.version_cmd = version_cmd
        self.pattern = pattern
        self.timeout = timeout

    def probe(self, capability: Capability) -> PresenceResult:
        if not shutil.which(self.cmd[0]):
            return PresenceResult.absent(f"{self.cmd[0]} not on PATH")
        try:
            result = subprocess.run(
                self.cmd, capture_output=True, text=True, timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"{' '.join(self.cmd)} timed out") from e
        except OSError as e:
            raise ProbeError(f"{' '.join(self.cmd)}: {e}") from e

        if result.returncode != 0:
            return PresenceResult.absent()
        version = None
        if self.version_cmd:
            version = read_version(self.version_cmd, self.pattern)
        return PresenceResult.found(version, detail=result.stdout.strip())

    def __repr__(self) -> str:
        return f"<CommandProbe {' '.join(self.cmd)!r}>"


class PathProbe(StateProbe):
    """Present iff a file or directory exists.

    ``version_cmd`` optionally reads the version of what's there.
    """

    def __init__(
        self,
        path: Path,
        *,
        non_empty: bool = False,
        version_cmd: list[str] | None = None,
        pattern: str = _SEMVER,
    ):
        self.path = path
        self.non_empty = non_empty
        self.version_cmd = version_cmd
        self.pattern = pattern

    def probe(self, capability: Capability) -> PresenceResult:
        try:
            exists = self.path.exists()
            if exists and self.non_empty and self.path.is_file():
                exists = self.path.stat().st_size > 0
        except PermissionError as e:
            raise ProbeError(f"Cannot inspect {self.path}: {e}") from e
        if not exists:
            return PresenceResult.absent(f"{self.path} not found")
        version = read_version(self.version_cmd, self.pattern) if self.version_cmd else None
        return PresenceResult.found(version, detail=str(self.path))

    def __repr__(self) -> str:
        return f"<PathProbe {str(self.path)!r}>"


class PrivilegeProbe(StateProbe):
    """Present iff we're root or sudo credentials are already cached."""

    def probe(self, capability: Capability) -> PresenceResult:
        if os.geteuid() == 0:
            return PresenceResult.found(detail="root")
        if not shutil.which("sudo"):
            return PresenceResult.absent("sudo not available")
        try:
            result = subprocess.run(
                ["sudo", "-n", "true"], capture_output=True, text=True, timeout=10,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            raise ProbeError(f"sudo check failed: {e}") from e
        if result.returncode == 0:
            return PresenceResult.found(detail="cached")
        return PresenceResult.absent("no cached sudo credentials")


class DefaultShellProbe(StateProbe):
    """Present iff the login shell (``$SHELL``) is ``shell_path``."""

    def __init__(self, shell_path: Path):
        self.shell_path = shell_path

    def probe(self, capability: Capability) -> PresenceResult:
        current = os.environ.get("SHELL", "")
        if current == str(self.shell_path):
            return PresenceResult.found(detail=current)
        return PresenceResult.absent(f"login shell is {current or 'unset'}")


class MutationProbe(StateProbe):
    """For configuration-only capabilities: present iff every profile
    mutation is already in place."""

    def __init__(self, mutations: list[ProfileMutation]):
        self.mutations = list(mutations)

    def probe(self, capability: Capability) -> PresenceResult:
        pending = [m for m in self.mutations if not m.is_applied()]
        if pending:
            return PresenceResult.absent(f"{len(pending)} profile change(s) pending")
        return PresenceResult.found(detail="profile up to date")
