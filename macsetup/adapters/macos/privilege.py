"""
Privilege elevation — prime (and later drop) the sudo credential cache.

This is the default critical step: if it fails, nothing that follows
can complete, so the engine aborts the run.
"""

from __future__ import annotations

import logging
import os

from macsetup.adapters.base import Installer
from macsetup.adapters.shell.command import failure_from, run_command
from macsetup.core.models.outcome import InstallResult, PresenceResult

logger = logging.getLogger(__name__)


class PrivilegeInstaller(Installer):
    """``sudo -v`` up front; ``sudo -k`` when the run ends."""

    def __init__(self, timeout: int = 120):
        self.timeout = timeout
        self._held = False

    @property
    def name(self) -> str:
        return "sudo"

    def apply(self, current: PresenceResult) -> InstallResult:
        if os.geteuid() == 0:
            return InstallResult.success(message="running as root")

        # Interactive so sudo can prompt on the terminal.
        result = run_command(["sudo", "-v"], interactive=True, timeout=self.timeout)
        if not result["ok"]:
            return failure_from(result, kind="privilege")
        self._held = True
        return InstallResult.success(message="sudo session active")

    def release(self) -> None:
        if not self._held:
            return
        result = run_command(["sudo", "-k"], timeout=15)
        if not result["ok"]:
            logger.warning("Could not drop sudo credentials: %s", result.get("error"))
        self._held = False
        logger.debug("sudo session released")
