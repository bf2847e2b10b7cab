"""
Shell command runner and the generic command installer.

``run_command`` is the SINGLE PLACE where ``subprocess.run`` is called
for install operations. Logging, timeouts and error capture are
centralised here; it never raises for a failing command.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any

from macsetup.adapters.base import Installer, StateProbe
from macsetup.core.errors import ProbeError
from macsetup.core.models.outcome import InstallResult, PresenceResult
from macsetup.core.models.step import Capability

logger = logging.getLogger(__name__)

# Output is trimmed to this many characters in results and logs.
_TAIL = 2000


def run_command(
    cmd: list[str] | str,
    *,
    timeout: int = 600,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
    shell: bool = False,
    interactive: bool = False,
    input_text: str | None = None,
) -> dict[str, Any]:
    """Run a command and capture its result.

    Args:
        cmd: Argument list, or a string when ``shell`` is True.
        timeout: Seconds before the command is killed.
        env_overrides: Extra environment variables.
        cwd: Working directory.
        shell: Run through ``/bin/sh -c``.
        interactive: Inherit the terminal instead of capturing output
            (for password prompts and GUI installers).
        input_text: Data piped to stdin.

    Returns:
        ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
        ``{"ok": False, "error": "...", "stderr": "...", ...}`` on failure.
    """
    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Executing: %s (cwd=%s)", cmd, cwd)
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            shell=shell,
            capture_output=not interactive,
            text=True,
            timeout=timeout,
            input=input_text,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)", "timeout": True}
    except OSError as e:
        return {"ok": False, "error": f"Command could not start: {e}"}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = (result.stdout or "")[-_TAIL:]
    stderr = (result.stderr or "")[-_TAIL:]

    if result.returncode == 0:
        return {"ok": True, "stdout": stdout, "stderr": stderr, "elapsed_ms": elapsed_ms}

    logger.debug("Command failed (exit %d): %s", result.returncode, stderr.strip())
    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "returncode": result.returncode,
        "stdout": stdout,
        "stderr": stderr,
        "elapsed_ms": elapsed_ms,
    }


def failure_from(result: dict[str, Any], kind: str = "install") -> InstallResult:
    """Turn a failed ``run_command`` result into an InstallResult."""
    message = result.get("error", "unknown error")
    stderr = (result.get("stderr") or "").strip()
    if stderr:
        message = f"{message}: {stderr.splitlines()[-1]}"
    if result.get("timeout"):
        kind = "timeout"
    return InstallResult.failure(kind, message)


class CommandInstaller(Installer):
    """Install with one command, upgrade with another.

    After either command succeeds, ``version_probe`` (if given) is
    consulted for the resulting version. A missing ``upgrade_cmd``
    means "present is good enough".
    """

    def __init__(
        self,
        installer_name: str,
        install_cmd: list[str] | str,
        upgrade_cmd: list[str] | str | None = None,
        *,
        capability: Capability | None = None,
        version_probe: StateProbe | None = None,
        shell: bool = False,
        env_overrides: dict[str, str] | None = None,
        timeout: int = 600,
        lock_group: str | None = None,
        notes: list[str] | None = None,
    ):
        self._name = installer_name
        self.install_cmd = install_cmd
        self.upgrade_cmd = upgrade_cmd
        self.capability = capability or Capability(name=installer_name)
        self.version_probe = version_probe
        self.shell = shell
        self.env_overrides = env_overrides
        self.timeout = timeout
        self.lock_group = lock_group
        self.notes = notes or []

    @property
    def name(self) -> str:
        return self._name

    def apply(self, current: PresenceResult) -> InstallResult:
        cmd = self.upgrade_cmd if current.present else self.install_cmd
        if cmd is None:
            return InstallResult.success(current.version, notes=self.notes)

        result = run_command(
            cmd,
            shell=self.shell,
            env_overrides=self.env_overrides,
            timeout=self.timeout,
        )
        if not result["ok"]:
            return failure_from(result)

        return InstallResult.success(self._detect_version(current), notes=self.notes)

    def _detect_version(self, current: PresenceResult) -> str | None:
        if self.version_probe is None:
            return current.version
        try:
            after = self.version_probe.probe(self.capability)
        except ProbeError:
            return current.version
        return after.version if after.present else current.version
