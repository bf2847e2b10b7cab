"""
Docker Desktop — download the disk image, mount, copy, unmount.

The image is always detached and deleted, whether or not the copy
succeeds, and a half-copied ``Docker.app`` is removed on failure.
"""

from __future__ import annotations

import logging
import plistlib
import shutil
import tempfile
from pathlib import Path

from macsetup.adapters.base import Installer, StateProbe
from macsetup.adapters.macos.host import machine_arch
from macsetup.adapters.shell.command import failure_from, run_command
from macsetup.core.errors import ProbeError
from macsetup.core.models.outcome import InstallResult, PresenceResult
from macsetup.core.models.step import Capability

logger = logging.getLogger(__name__)

DOCKER_DMG_URLS = {
    "arm64": "https://desktop.docker.com/mac/main/arm64/Docker.dmg",
    "amd64": "https://desktop.docker.com/mac/main/amd64/Docker.dmg",
}

FIRST_LAUNCH_NOTE = "Open Docker Desktop from /Applications to complete initial setup."
UPDATE_NOTE = (
    "To update Docker Desktop, use its built-in updater "
    "(Docker menu → Check for Updates)."
)


def app_version(app: Path) -> str | None:
    """``CFBundleShortVersionString`` from an app bundle, if readable."""
    info = app / "Contents" / "Info.plist"
    try:
        with info.open("rb") as f:
            data = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ValueError):
        return None
    version = data.get("CFBundleShortVersionString")
    return str(version) if version else None


class AppBundleProbe(StateProbe):
    """Present iff the ``.app`` bundle exists; version from Info.plist."""

    def __init__(self, app: Path):
        self.app = app

    def probe(self, capability: Capability) -> PresenceResult:
        try:
            exists = self.app.is_dir()
        except PermissionError as e:
            raise ProbeError(f"Cannot inspect {self.app}: {e}") from e
        if not exists:
            return PresenceResult.absent(f"{self.app} not found")
        return PresenceResult.found(app_version(self.app), detail=str(self.app))


class DockerDesktopInstaller(Installer):

    def __init__(
        self,
        arch: str | None = None,
        applications: Path = Path("/Applications"),
        timeout: int = 1800,
    ):
        self.arch = arch or machine_arch()
        self.applications = applications
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "docker-desktop"

    @property
    def app(self) -> Path:
        return self.applications / "Docker.app"

    def apply(self, current: PresenceResult) -> InstallResult:
        if current.present:
            return InstallResult.success(current.version, notes=[UPDATE_NOTE])

        url = DOCKER_DMG_URLS.get(self.arch)
        if url is None:
            return InstallResult.failure("unsupported", f"No Docker Desktop build for {self.arch}")

        workdir = Path(tempfile.mkdtemp(prefix="macsetup-docker-"))
        dmg = workdir / "Docker.dmg"
        mountpoint = workdir / "mnt"
        try:
            logger.info("Downloading Docker Desktop…")
            result = run_command(["curl", "-fSL", "-o", str(dmg), url], timeout=self.timeout)
            if not result["ok"]:
                return failure_from(result, kind="download")

            logger.info("Mounting and installing Docker Desktop…")
            mountpoint.mkdir()
            result = run_command(
                ["hdiutil", "attach", str(dmg), "-nobrowse", "-quiet",
                 "-mountpoint", str(mountpoint)],
                timeout=300,
            )
            if not result["ok"]:
                return failure_from(result, kind="mount")

            try:
                result = run_command(
                    ["cp", "-R", str(mountpoint / "Docker.app"), str(self.applications)],
                    timeout=self.timeout,
                )
            finally:
                detached = run_command(["hdiutil", "detach", str(mountpoint), "-quiet"], timeout=120)
                if not detached["ok"]:
                    logger.warning("Could not detach %s: %s", mountpoint, detached.get("error"))

            if not result["ok"]:
                shutil.rmtree(self.app, ignore_errors=True)
                return failure_from(result)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        return InstallResult.success(app_version(self.app), notes=[FIRST_LAUNCH_NOTE])
