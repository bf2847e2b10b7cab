"""
Host facts — architecture and Homebrew locations.

Read-only, no subprocess.
"""

from __future__ import annotations

import os
import platform
from pathlib import Path

_ARCH_MAP = {"x86_64": "amd64", "amd64": "amd64", "arm64": "arm64", "aarch64": "arm64"}


def machine_arch() -> str:
    """``arm64`` (Apple Silicon) or ``amd64`` (Intel)."""
    machine = platform.machine().lower()
    return _ARCH_MAP.get(machine, machine)


def brew_prefix(arch: str | None = None) -> Path:
    """Homebrew's install prefix for the given architecture."""
    arch = arch or machine_arch()
    return Path("/opt/homebrew") if arch == "arm64" else Path("/usr/local")


def brew_bin(arch: str | None = None) -> Path:
    return brew_prefix(arch) / "bin" / "brew"


def ensure_on_path(directory: Path) -> None:
    """Prepend ``directory`` to this process's PATH if it isn't there.

    Lets later steps find tools installed earlier in the same run,
    the way ``eval "$(brew shellenv)"`` would in a shell.
    """
    entries = os.environ.get("PATH", "").split(os.pathsep)
    if str(directory) not in entries:
        os.environ["PATH"] = os.pathsep.join([str(directory), *entries])
