"""
nvm and Node.js.

nvm is a shell function, not a binary, so every nvm call goes through
``bash -c '. "$NVM_DIR/nvm.sh" && nvm …'``. Profile wiring is not
done by the nvm installer (``PROFILE=/dev/null``); the step's managed
block takes care of it.
"""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from typing import Any

from macsetup.adapters.base import Installer, StateProbe
from macsetup.adapters.shell.command import failure_from, run_command
from macsetup.core.errors import ProbeError
from macsetup.core.models.outcome import InstallResult, PresenceResult
from macsetup.core.models.step import Capability

logger = logging.getLogger(__name__)

DEFAULT_NVM_VERSION = "v0.40.1"
NVM_INSTALL_URL = "https://raw.githubusercontent.com/nvm-sh/nvm/{version}/install.sh"

NVM_BLOCK_BEGIN = "# ── NVM (managed by macsetup) ──"
NVM_BLOCK_END = "# ── End NVM ──"


def nvm_init_lines(nvm_dir: Path) -> list[str]:
    """Profile lines that load nvm in new shells."""
    return [
        f'export NVM_DIR="{nvm_dir}"',
        '[ -s "$NVM_DIR/nvm.sh" ] && \\. "$NVM_DIR/nvm.sh"',
        '[ -s "$NVM_DIR/bash_completion" ] && \\. "$NVM_DIR/bash_completion"',
    ]


def run_nvm(nvm_dir: Path, args: str, timeout: int = 900) -> dict[str, Any]:
    """Run ``nvm <args>`` in a bash that has sourced nvm.sh."""
    script = f'. "$NVM_DIR/nvm.sh" && nvm {args}'
    return run_command(
        ["bash", "-c", script],
        env_overrides={"NVM_DIR": str(nvm_dir)},
        timeout=timeout,
    )


def _nvm_script_ready(nvm_dir: Path) -> bool:
    """True if $NVM_DIR/nvm.sh exists and is non-empty."""
    script = nvm_dir / "nvm.sh"
    try:
        return script.is_file() and script.stat().st_size > 0
    except OSError as e:
        raise ProbeError(f"Cannot inspect {script}: {e}") from e


def _clean_version(raw: str) -> str | None:
    match = re.search(r"v?(\d+\.\d+\.\d+)", raw)
    return match.group(1) if match else None


class NvmProbe(StateProbe):
    """Present iff ``$NVM_DIR/nvm.sh`` exists and is non-empty."""

    def __init__(self, nvm_dir: Path):
        self.nvm_dir = nvm_dir

    def probe(self, capability: Capability) -> PresenceResult:
        if not _nvm_script_ready(self.nvm_dir):
            return PresenceResult.absent(f"{self.nvm_dir / 'nvm.sh'} not found")
        result = run_nvm(self.nvm_dir, "--version", timeout=30)
        version = _clean_version(result.get("stdout", "")) if result["ok"] else None
        return PresenceResult.found(version, detail=str(self.nvm_dir))


class NvmInstaller(Installer):
    """Run the pinned nvm install script; it updates in place when re-run."""

    def __init__(self, nvm_dir: Path, version: str = DEFAULT_NVM_VERSION, timeout: int = 600):
        self.nvm_dir = nvm_dir
        self.version = version
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "nvm"

    def apply(self, current: PresenceResult) -> InstallResult:
        url = NVM_INSTALL_URL.format(version=self.version)
        self.nvm_dir.mkdir(parents=True, exist_ok=True)
        result = run_command(
            f'bash -c "$(curl -fsSL {url})"',
            shell=True,
            env_overrides={"PROFILE": "/dev/null", "NVM_DIR": str(self.nvm_dir)},
            timeout=self.timeout,
        )
        if not result["ok"]:
            if current.present:
                return InstallResult.success(
                    current.version, notes=["nvm update check failed (not critical)."],
                )
            return failure_from(result)

        return InstallResult.success(self.version.lstrip("v"))


class NodeProbe(StateProbe):
    """Present iff nvm has an active Node.js version."""

    def __init__(self, nvm_dir: Path):
        self.nvm_dir = nvm_dir

    def probe(self, capability: Capability) -> PresenceResult:
        if not _nvm_script_ready(self.nvm_dir):
            return PresenceResult.absent("nvm not installed")
        result = run_nvm(self.nvm_dir, "current", timeout=30)
        version = _clean_version(result.get("stdout", "")) if result["ok"] else None
        if version is None:
            return PresenceResult.absent("no active node version")
        return PresenceResult.found(version)


class NodeLtsInstaller(Installer):
    """Install the newest release on ``channel`` and make it the default.

    ``channel`` is anything nvm accepts: ``lts/*``, ``lts/iron``, ``22``.
    """

    def __init__(self, nvm_dir: Path, channel: str = "lts/*", timeout: int = 900):
        self.nvm_dir = nvm_dir
        self.channel = channel
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "nvm-node"

    def apply(self, current: PresenceResult) -> InstallResult:
        channel = shlex.quote(self.channel)
        remote = run_nvm(self.nvm_dir, f"version-remote {channel}", timeout=120)
        latest = _clean_version(remote.get("stdout", "")) if remote["ok"] else None

        if current.present and latest and current.version == latest:
            logger.info("Node.js %s is already the active version", latest)
            return InstallResult.success(current.version)

        result = run_nvm(self.nvm_dir, f"install {channel}", timeout=self.timeout)
        if not result["ok"]:
            return failure_from(result)
        result = run_nvm(self.nvm_dir, f"alias default {channel}", timeout=60)
        if not result["ok"]:
            return failure_from(result)

        active = run_nvm(self.nvm_dir, f"version {channel}", timeout=60)
        version = _clean_version(active.get("stdout", "")) if active["ok"] else latest
        return InstallResult.success(version)
