"""
Configuration loader — reads the optional settings file and the
environment into a validated Settings model.

Settings file lookup order:
    --config PATH  >  $MACSETUP_CONFIG  >  ~/.config/macsetup/config.yml

A missing default file is fine (all settings have defaults). An
explicitly named file that is missing or invalid is a ConfigError.

Environment overrides (always win over the file):
    NVM_DIR           nvm installation root          (~/.nvm)
    ZSH_CUSTOM        Oh My Zsh custom directory     (~/.oh-my-zsh/custom)
    MACSETUP_PROFILE  login profile for PATH wiring  (from $SHELL)
    MACSETUP_ZSHRC    rc file for the alias block    (~/.zshrc)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("~/.config/macsetup/config.yml")

DEFAULT_ALIASES = [
    "alias sail='./vendor/bin/sail'",
    "alias art='php artisan'",
    "alias pest='./vendor/bin/pest'",
]

DEFAULT_ZSH_PLUGINS = {
    "zsh-autosuggestions": "https://github.com/zsh-users/zsh-autosuggestions.git",
    "zsh-syntax-highlighting": "https://github.com/zsh-users/zsh-syntax-highlighting.git",
}

# capability name → Homebrew cask
DEFAULT_CASKS = {
    "vscode": "visual-studio-code",
    "1password-cli": "1password-cli",
}

# Login profile per shell; zsh is the macOS default.
_PROFILE_BY_SHELL = {
    "zsh": "~/.zprofile",
    "bash": "~/.bash_profile",
}


class ConfigError(Exception):
    """Raised when the settings file is missing, unreadable or invalid."""


class Paths(BaseModel):
    """Host paths, resolved from the environment."""

    home: Path
    nvm_dir: Path
    oh_my_zsh: Path
    zsh_custom: Path
    profile: Path
    zshrc: Path


class Settings(BaseModel):
    """User-tunable provisioning settings."""

    model_config = ConfigDict(extra="forbid")

    aliases: list[str] = Field(default_factory=lambda: list(DEFAULT_ALIASES))
    zsh_plugins: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ZSH_PLUGINS))
    casks: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CASKS))
    skip: list[str] = Field(default_factory=list)
    critical: list[str] = Field(default_factory=lambda: ["privilege"])
    upgrade: bool = True
    node_channel: str = "lts/*"
    nvm_version: str = "v0.40.1"
    min_versions: dict[str, str] = Field(default_factory=dict)

    # Filled in by load_settings, not read from the file.
    paths: Paths | None = None


def resolve_paths(env: Mapping[str, str] | None = None) -> Paths:
    """Resolve host paths from environment overrides and defaults."""
    env = os.environ if env is None else env
    home = Path(env.get("HOME") or Path.home())

    def expand(value: str) -> Path:
        if value.startswith("~"):
            return home / value[1:].lstrip("/")
        return Path(value)

    shell = os.path.basename(env.get("SHELL", ""))
    profile = env.get("MACSETUP_PROFILE") or _PROFILE_BY_SHELL.get(shell, "~/.zprofile")
    oh_my_zsh = home / ".oh-my-zsh"

    return Paths(
        home=home,
        nvm_dir=expand(env.get("NVM_DIR") or "~/.nvm"),
        oh_my_zsh=oh_my_zsh,
        zsh_custom=expand(env["ZSH_CUSTOM"]) if env.get("ZSH_CUSTOM") else oh_my_zsh / "custom",
        profile=expand(profile),
        zshrc=expand(env.get("MACSETUP_ZSHRC") or "~/.zshrc"),
    )


def find_config_file(env: Mapping[str, str] | None = None) -> Path | None:
    """Locate the settings file, or None if there isn't one."""
    env = os.environ if env is None else env
    explicit = env.get("MACSETUP_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    default = DEFAULT_CONFIG_FILE.expanduser()
    return default if default.is_file() else None


def load_settings(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit settings file. If None, searches as described above.
        env: Environment mapping (default: ``os.environ``).

    Returns:
        Validated Settings with ``paths`` resolved.

    Raises:
        ConfigError: If a named file is missing or the file is invalid.
    """
    if path is None:
        path = find_config_file(env)

    data: dict = {}
    if path is not None:
        data = _read_yaml(path)

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    settings.paths = resolve_paths(env)
    logger.debug("Settings loaded from %s", path or "defaults")
    return settings


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading settings from %s", path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    if "paths" in data:
        raise ConfigError(f"'paths' cannot be set in {path}; use environment variables")
    return data
