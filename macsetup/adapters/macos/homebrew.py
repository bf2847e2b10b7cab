"""
Homebrew — the package manager itself, plus formula and cask installers.

All brew-driven installers share the ``brew`` lock group so they are
never run concurrently.
"""

from __future__ import annotations

import logging
import shutil
import subprocess

from macsetup.adapters.base import Installer, StateProbe
from macsetup.adapters.macos.host import brew_bin, brew_prefix, ensure_on_path, machine_arch
from macsetup.adapters.probes import ExecutableProbe, read_version
from macsetup.adapters.shell.command import failure_from, run_command
from macsetup.core.errors import ProbeError
from macsetup.core.models.outcome import InstallResult, PresenceResult
from macsetup.core.models.step import Capability

logger = logging.getLogger(__name__)

HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
BREW_SHELLENV_LINE = (
    'eval "$(/opt/homebrew/bin/brew shellenv)" 2>/dev/null'
    ' || eval "$(/usr/local/bin/brew shellenv)" 2>/dev/null'
)
_BREW_VERSION = r"Homebrew\s+(\d+\.\d+\.\d+)"


def _brew() -> str:
    """Path to brew: PATH first, then the arch-specific prefix."""
    return shutil.which("brew") or str(brew_bin())


class HomebrewProbe(ExecutableProbe):
    """Present iff ``brew`` is on PATH or at the arch-specific prefix."""

    def __init__(self, arch: str | None = None):
        super().__init__("brew", pattern=_BREW_VERSION, fallback=brew_bin(arch))


class HomebrewInstaller(Installer):
    """Run the official install script, or ``brew update`` if present."""

    lock_group = "brew"

    def __init__(self, arch: str | None = None, timeout: int = 1800):
        self.arch = arch or machine_arch()
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "homebrew"

    def apply(self, current: PresenceResult) -> InstallResult:
        if current.present:
            ensure_on_path(brew_prefix(self.arch) / "bin")
            result = run_command([_brew(), "update"], timeout=self.timeout)
            if not result["ok"]:
                return failure_from(result)
        else:
            logger.info("Installing Homebrew…")
            result = run_command(
                f'/bin/bash -c "$(curl -fsSL {HOMEBREW_INSTALL_URL})"',
                shell=True,
                env_overrides={"NONINTERACTIVE": "1"},
                timeout=self.timeout,
            )
            if not result["ok"]:
                return failure_from(result)
            # Make brew usable for the rest of this run.
            ensure_on_path(brew_prefix(self.arch) / "bin")

        version = read_version([_brew(), "--version"], _BREW_VERSION)
        return InstallResult.success(version)


class BrewPackageProbe(StateProbe):
    """Present iff any of ``names`` is installed as a formula (or cask).

    The version is taken from ``brew list --versions``, whose output
    looks like ``git 2.44.0``.
    """

    def __init__(self, names: list[str], cask: bool = False):
        self.names = list(names)
        self.cask = cask

    def probe(self, capability: Capability) -> PresenceResult:
        brew = shutil.which("brew") or (str(brew_bin()) if brew_bin().exists() else None)
        if brew is None:
            return PresenceResult.absent("brew not found")

        kind = ["--cask"] if self.cask else []
        for name in self.names:
            try:
                result = subprocess.run(
                    [brew, "list", *kind, "--versions", name],
                    capture_output=True, text=True, timeout=60,
                )
            except (subprocess.TimeoutExpired, OSError) as e:
                raise ProbeError(f"brew list {name}: {e}") from e
            line = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""
            if result.returncode == 0 and line:
                parts = line.split()
                version = parts[-1] if len(parts) > 1 else None
                return PresenceResult.found(version, detail=name)
        return PresenceResult.absent(f"{', '.join(self.names)} not installed")

    def __repr__(self) -> str:
        return f"<BrewPackageProbe {self.names!r} cask={self.cask}>"


class BrewFormulaInstaller(Installer):
    """``brew install`` when absent, ``brew upgrade`` when present.

    A failed upgrade is not a failure: the formula is still installed,
    and the failure is surfaced as a note.
    """

    lock_group = "brew"

    def __init__(
        self,
        formula: str,
        cask: bool = False,
        timeout: int = 1800,
        notes: list[str] | None = None,
    ):
        self.formula = formula
        self.cask = cask
        self.timeout = timeout
        self.notes = notes or []

    @property
    def name(self) -> str:
        return f"brew-{'cask' if self.cask else 'formula'}:{self.formula}"

    def apply(self, current: PresenceResult) -> InstallResult:
        kind = ["--cask"] if self.cask else []
        notes = list(self.notes)

        if current.present:
            result = run_command(
                [_brew(), "upgrade", *kind, self.formula], timeout=self.timeout,
            )
            if not result["ok"]:
                logger.warning("brew upgrade %s failed: %s", self.formula, result.get("error"))
                notes.append(f"brew upgrade {self.formula} failed; keeping {current.version}")
        else:
            result = run_command(
                [_brew(), "install", *kind, self.formula], timeout=self.timeout,
            )
            if not result["ok"]:
                return failure_from(result)

        try:
            after = BrewPackageProbe([self.formula], cask=self.cask).probe(
                Capability(name=self.formula)
            )
        except ProbeError:
            return InstallResult.success(current.version, notes=notes)
        return InstallResult.success(after.version or current.version, notes=notes)


def brew_cask(cask: str, timeout: int = 1800) -> BrewFormulaInstaller:
    """Installer for a Homebrew cask (GUI apps, vendor CLIs)."""
    return BrewFormulaInstaller(cask, cask=True, timeout=timeout)
