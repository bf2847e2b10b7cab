"""
Default step catalog — the workstation this tool provisions.

Steps are declared in the order they should run when nothing else
constrains them; ``requires`` only names hard prerequisites. The
catalog is pure wiring: every side effect lives in the adapters.

Settings hooks:
    skip          drop steps by name (dependents treat them as satisfied)
    critical      step names whose failure aborts the run
    upgrade       False keeps present capabilities as they are
    min_versions  per-step ">=" constraints
"""

from __future__ import annotations

import logging
from dataclasses import replace

from macsetup.adapters.macos.docker import DOCKER_DMG_URLS, AppBundleProbe, DockerDesktopInstaller
from macsetup.adapters.macos.homebrew import (
    BREW_SHELLENV_LINE,
    BrewFormulaInstaller,
    BrewPackageProbe,
    HomebrewInstaller,
    HomebrewProbe,
    brew_cask,
)
from macsetup.adapters.macos.host import brew_prefix, machine_arch
from macsetup.adapters.macos.nvm import (
    NVM_BLOCK_BEGIN,
    NVM_BLOCK_END,
    NodeLtsInstaller,
    NodeProbe,
    NvmInstaller,
    NvmProbe,
    nvm_init_lines,
)
from macsetup.adapters.macos.privilege import PrivilegeInstaller
from macsetup.adapters.macos.shell import (
    PLUGIN_ACTIVATION_NOTE,
    DefaultShellInstaller,
    GitCloneInstaller,
    OhMyZshInstaller,
)
from macsetup.adapters.macos.xcode import XcodeCltInstaller
from macsetup.adapters.probes import CommandProbe, DefaultShellProbe, MutationProbe, PathProbe, PrivilegeProbe
from macsetup.adapters.shell.profile import (
    BlockMutation,
    LineMutation,
    ManagedBlock,
    ProfileOnlyInstaller,
)
from macsetup.core.config.loader import ConfigError, Settings, resolve_paths
from macsetup.core.models.step import Capability, Step

logger = logging.getLogger(__name__)

ALIAS_BLOCK_BEGIN = "# ── Team Aliases (managed by mac-setup.sh) ──"
ALIAS_BLOCK_END = "# ── End Team Aliases ──"

GO_BLOCK_BEGIN = "# ── Go (managed by macsetup) ──"
GO_BLOCK_END = "# ── End Go ──"
GO_ENV_LINES = (
    'export GOPATH="$HOME/go"',
    'export PATH="$GOPATH/bin:$PATH"',
)

GIT_IDENTITY_NOTE = (
    "Set your git identity: git config --global user.name \"Your Name\" "
    "&& git config --global user.email \"you@example.com\""
)
GIT_DEFAULTS_NOTE = (
    "Recommended git defaults: "
    "git config --global init.defaultBranch main; "
    "git config --global pull.rebase true; "
    "git config --global diff.algorithm histogram; "
    "git config --global core.editor \"code --wait\"; "
    "git config --global credential.helper osxkeychain; "
    "aliases st=status co=checkout br=branch "
    "lg=\"log --oneline --graph --decorate --all\" (git config --global alias.<name> ...). "
    "Verify with: git config --global --list"
)

# Homebrew names that count as "python is installed", newest alias first.
PYTHON_FORMULAS = ["python@3", "python@3.13", "python@3.12"]

# Labels for the built-in steps. Plugin and cask steps use their own names.
_LABELS = {
    "privilege": "Administrator privileges",
    "xcode-clt": "Xcode Command Line Tools",
    "homebrew": "Homebrew",
    "zsh": "Zsh",
    "default-shell": "Default login shell",
    "oh-my-zsh": "Oh My Zsh",
    "git": "Git",
    "docker-desktop": "Docker Desktop",
    "nvm": "nvm",
    "node": "Node.js LTS",
    "python": "Python 3",
    "go": "Go",
    "shell-aliases": "Team shell aliases",
}


def plugin_step_name(plugin: str) -> str:
    return f"zsh-plugin:{plugin}"


def build_steps(settings: Settings, arch: str | None = None) -> list[Step]:
    """Build the provisioning steps for this host.

    Args:
        settings: Loaded settings. ``settings.paths`` is resolved from
            the environment if the caller didn't.
        arch: ``arm64`` or ``amd64`` (default: detected).

    Returns:
        Steps in declaration order, with ``skip`` applied.

    Raises:
        ConfigError: ``arch`` has no Docker Desktop download.
    """
    arch = arch or machine_arch()
    if arch not in DOCKER_DMG_URLS:
        raise ConfigError(f"Unsupported architecture: {arch}")
    paths = settings.paths or resolve_paths()
    prefix = brew_prefix(arch)
    zsh_path = prefix / "bin" / "zsh"
    docker = DockerDesktopInstaller(arch)

    def cap(name: str, label: str | None = None) -> Capability:
        return Capability(
            name=name,
            label=label or _LABELS.get(name, name),
            min_version=settings.min_versions.get(name),
        )

    steps: list[Step] = [
        Step(cap("privilege"), PrivilegeProbe(), PrivilegeInstaller()),
        Step(
            cap("xcode-clt"),
            CommandProbe(["xcode-select", "-p"]),
            XcodeCltInstaller(),
        ),
        Step(
            cap("homebrew"),
            HomebrewProbe(arch),
            HomebrewInstaller(arch),
            requires=["xcode-clt"],
            mutations=[LineMutation(paths.profile, BREW_SHELLENV_LINE, comment="# Homebrew")],
        ),
        Step(
            cap("zsh"),
            BrewPackageProbe(["zsh"]),
            BrewFormulaInstaller("zsh"),
            requires=["homebrew"],
        ),
        Step(
            cap("default-shell"),
            DefaultShellProbe(zsh_path),
            DefaultShellInstaller(zsh_path),
            requires=["zsh", "privilege"],
        ),
        Step(
            cap("oh-my-zsh"),
            PathProbe(paths.oh_my_zsh),
            OhMyZshInstaller(paths.oh_my_zsh),
            requires=["zsh"],
        ),
    ]

    for i, (plugin, url) in enumerate(settings.zsh_plugins.items()):
        dest = paths.zsh_custom / "plugins" / plugin
        steps.append(Step(
            cap(plugin_step_name(plugin), plugin),
            PathProbe(dest),
            GitCloneInstaller(
                f"git-clone:{plugin}", url, dest,
                # One reminder covers every plugin.
                notes=[PLUGIN_ACTIVATION_NOTE] if i == 0 else None,
            ),
            requires=["oh-my-zsh"],
        ))

    steps += [
        Step(
            cap("git"),
            BrewPackageProbe(["git"]),
            BrewFormulaInstaller("git", notes=[GIT_IDENTITY_NOTE, GIT_DEFAULTS_NOTE]),
            requires=["homebrew"],
        ),
        Step(cap("docker-desktop"), AppBundleProbe(docker.app), docker),
        Step(
            cap("nvm"),
            NvmProbe(paths.nvm_dir),
            NvmInstaller(paths.nvm_dir, settings.nvm_version),
            requires=["xcode-clt"],
            mutations=[BlockMutation(ManagedBlock(
                path=paths.profile,
                begin=NVM_BLOCK_BEGIN,
                end=NVM_BLOCK_END,
                body=tuple(nvm_init_lines(paths.nvm_dir)),
            ))],
        ),
        Step(
            cap("node"),
            NodeProbe(paths.nvm_dir),
            NodeLtsInstaller(paths.nvm_dir, settings.node_channel),
            requires=["nvm"],
        ),
        Step(
            cap("python"),
            BrewPackageProbe(PYTHON_FORMULAS),
            BrewFormulaInstaller("python@3"),
            requires=["homebrew"],
        ),
        Step(
            cap("go"),
            BrewPackageProbe(["go"]),
            BrewFormulaInstaller("go"),
            requires=["homebrew"],
            mutations=[BlockMutation(ManagedBlock(
                path=paths.profile,
                begin=GO_BLOCK_BEGIN,
                end=GO_BLOCK_END,
                body=GO_ENV_LINES,
            ))],
        ),
    ]

    for name, cask in settings.casks.items():
        steps.append(Step(
            cap(name, cask),
            BrewPackageProbe([cask], cask=True),
            brew_cask(cask),
            requires=["homebrew"],
        ))

    aliases = BlockMutation(ManagedBlock(
        path=paths.zshrc,
        begin=ALIAS_BLOCK_BEGIN,
        end=ALIAS_BLOCK_END,
        body=tuple(settings.aliases),
    ))
    steps.append(Step(
        cap("shell-aliases"),
        MutationProbe([aliases]),
        ProfileOnlyInstaller("alias-block"),
        mutations=[aliases],
    ))

    return apply_settings(steps, settings)


def apply_settings(steps: list[Step], settings: Settings) -> list[Step]:
    """Apply ``skip``, ``critical`` and ``upgrade`` to built steps."""
    names = {s.name for s in steps}
    for option in ("skip", "critical"):
        for name in getattr(settings, option):
            if name not in names:
                logger.warning("Unknown step '%s' in '%s' setting, ignored", name, option)
    for name in settings.min_versions:
        if name not in names:
            logger.warning("Unknown step '%s' in 'min_versions' setting, ignored", name)

    skipped = set(settings.skip)
    critical = set(settings.critical)
    result: list[Step] = []
    for step in steps:
        if step.name in skipped:
            logger.info("Skipping step '%s' (configured)", step.name)
            continue
        result.append(replace(
            step,
            requires=tuple(r for r in step.requires if r not in skipped),
            critical=step.name in critical,
            upgrade=settings.upgrade,
        ))
    return result
