"""
Xcode Command Line Tools.

``xcode-select --install`` only opens a GUI installer and returns
immediately, so the installer polls ``xcode-select -p`` until the
tools appear or the wait runs out.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from macsetup.adapters.base import Installer
from macsetup.adapters.shell.command import run_command
from macsetup.core.models.outcome import InstallResult, PresenceResult

logger = logging.getLogger(__name__)


class XcodeCltInstaller(Installer):

    def __init__(
        self,
        poll_interval: float = 5.0,
        max_wait: float = 1800.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "xcode-select"

    def apply(self, current: PresenceResult) -> InstallResult:
        if current.present:
            # Updates ship through Software Update, not through us.
            return InstallResult.success(current.version)

        logger.info("Installing Xcode Command Line Tools (a dialog may appear)…")
        started = run_command(["xcode-select", "--install"], timeout=60)
        if not started["ok"]:
            # Also fails when an install is already in progress; keep polling.
            logger.debug("xcode-select --install: %s", started.get("stderr", "").strip())

        waited = 0.0
        while waited < self.max_wait:
            check = run_command(["xcode-select", "-p"], timeout=30)
            if check["ok"]:
                return InstallResult.success(message=check["stdout"].strip())
            self._sleep(self.poll_interval)
            waited += self.poll_interval

        return InstallResult.failure(
            "timeout",
            f"Xcode Command Line Tools not installed after {int(self.max_wait)}s",
        )
