"""
Shell setup — login shell, Oh My Zsh and its plugins.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from macsetup.adapters.base import Installer
from macsetup.adapters.shell.command import failure_from, run_command
from macsetup.core.models.outcome import InstallResult, PresenceResult

logger = logging.getLogger(__name__)

OH_MY_ZSH_INSTALL_URL = "https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh"

PLUGIN_ACTIVATION_NOTE = (
    "To activate the zsh plugins, edit ~/.zshrc and update the plugins line, "
    "for example: plugins=(git zsh-autosuggestions zsh-syntax-highlighting)"
)


class DefaultShellInstaller(Installer):
    """Register ``shell_path`` in /etc/shells and make it the login shell."""

    def __init__(self, shell_path: Path, shells_file: Path = Path("/etc/shells")):
        self.shell_path = shell_path
        self.shells_file = shells_file

    @property
    def name(self) -> str:
        return "chsh"

    def apply(self, current: PresenceResult) -> InstallResult:
        if current.present:
            return InstallResult.success(message=f"login shell is {self.shell_path}")

        if not self._registered():
            logger.info("Adding %s to %s (may require sudo)…", self.shell_path, self.shells_file)
            result = run_command(
                ["sudo", "tee", "-a", str(self.shells_file)],
                input_text=f"{self.shell_path}\n",
                timeout=60,
            )
            if not result["ok"]:
                return failure_from(result, kind="privilege")

        result = run_command(["chsh", "-s", str(self.shell_path)], interactive=True, timeout=120)
        if not result["ok"]:
            return InstallResult.failure(
                "shell",
                f"Could not change default shell. Run manually: chsh -s {self.shell_path}",
            )
        return InstallResult.success(
            notes=[f"Default shell is now {self.shell_path}; open a new terminal window."],
        )

    def _registered(self) -> bool:
        try:
            lines = self.shells_file.read_text(encoding="utf-8").splitlines()
        except OSError:
            return False
        return str(self.shell_path) in (line.strip() for line in lines)


class OhMyZshInstaller(Installer):
    """Install Oh My Zsh, or ``git pull`` an existing checkout."""

    def __init__(self, home: Path, timeout: int = 600):
        self.home = home
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "oh-my-zsh"

    def apply(self, current: PresenceResult) -> InstallResult:
        if current.present:
            result = run_command(["git", "-C", str(self.home), "pull", "--quiet"], timeout=self.timeout)
            if not result["ok"]:
                return InstallResult.success(notes=["Oh My Zsh update failed (not critical)."])
            return InstallResult.success()

        # RUNZSH=no: don't start zsh afterwards. KEEP_ZSHRC=yes: keep ~/.zshrc.
        result = run_command(
            f'sh -c "$(curl -fsSL {OH_MY_ZSH_INSTALL_URL})"',
            shell=True,
            env_overrides={"RUNZSH": "no", "KEEP_ZSHRC": "yes", "ZSH": str(self.home)},
            timeout=self.timeout,
        )
        if not result["ok"]:
            return failure_from(result)
        return InstallResult.success()


class GitCloneInstaller(Installer):
    """Clone a repository, or pull it if the checkout already exists.

    A failed clone removes whatever it left behind.
    """

    def __init__(
        self,
        installer_name: str,
        url: str,
        dest: Path,
        notes: list[str] | None = None,
        timeout: int = 600,
    ):
        self._name = installer_name
        self.url = url
        self.dest = dest
        self.notes = notes or []
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self._name

    def apply(self, current: PresenceResult) -> InstallResult:
        if current.present:
            result = run_command(["git", "-C", str(self.dest), "pull", "--quiet"], timeout=self.timeout)
            if not result["ok"]:
                logger.debug("git pull in %s failed: %s", self.dest, result.get("error"))
            return InstallResult.success(notes=self.notes)

        existed = self.dest.exists()
        result = run_command(
            ["git", "clone", "--quiet", self.url, str(self.dest)], timeout=self.timeout,
        )
        if not result["ok"]:
            if not existed and self.dest.exists():
                shutil.rmtree(self.dest, ignore_errors=True)
            return failure_from(result)
        return InstallResult.success(notes=self.notes)
