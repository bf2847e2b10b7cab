"""
Tests for the built-in installers and probes.

No test here touches the real machine: ``run_command`` is replaced in
each installer module by a scripted ``FakeRunner``.
"""

import plistlib
from pathlib import Path

import pytest

from macsetup.adapters.macos import docker, homebrew, nvm, privilege, shell, xcode
from macsetup.adapters.macos.docker import AppBundleProbe, DockerDesktopInstaller
from macsetup.adapters.macos.homebrew import BrewFormulaInstaller, HomebrewProbe
from macsetup.adapters.macos.nvm import NodeLtsInstaller, NodeProbe, NvmInstaller, NvmProbe
from macsetup.adapters.macos.privilege import PrivilegeInstaller
from macsetup.adapters.macos.shell import DefaultShellInstaller, GitCloneInstaller, OhMyZshInstaller
from macsetup.adapters.macos.xcode import XcodeCltInstaller
from macsetup.adapters.probes import (
    CommandProbe,
    DefaultShellProbe,
    ExecutableProbe,
    MutationProbe,
    PathProbe,
    read_version,
)
from macsetup.adapters.shell import command
from macsetup.adapters.shell.command import CommandInstaller, failure_from
from macsetup.adapters.shell.profile import LineMutation, ProfileEditor
from macsetup.core.errors import ProbeError
from macsetup.core.models import Capability, PresenceResult

OK = {"ok": True, "stdout": "", "stderr": "", "elapsed_ms": 1}


def failed(error="Command failed (exit 1)", stderr="", **extra):
    return {"ok": False, "error": error, "stderr": stderr, **extra}


class FakeRunner:
    """Scripted ``run_command``: results are matched by substring."""

    def __init__(self, script: dict | None = None, default=None):
        self.script = script or {}
        self.default = default or OK
        self.calls: list[str] = []

    def __call__(self, cmd, **kwargs):
        text = cmd if isinstance(cmd, str) else " ".join(cmd)
        self.calls.append(text)
        for needle, result in self.script.items():
            if needle in text:
                return result(text) if callable(result) else result
        return self.default

    def ran(self, needle: str) -> bool:
        return any(needle in c for c in self.calls)


@pytest.fixture
def runner(monkeypatch):
    """Install one FakeRunner in every installer module."""
    fake = FakeRunner()
    for module in (command, docker, homebrew, nvm, privilege, shell, xcode):
        monkeypatch.setattr(module, "run_command", fake)
    return fake


ABSENT = PresenceResult.absent()


# ── Command helpers ──────────────────────────────────────────────────


class TestFailureFrom:
    def test_includes_last_stderr_line(self):
        result = failure_from(failed(stderr="warning: x\nerror: no network\n"))
        assert result.error_kind == "install"
        assert result.message.endswith("error: no network")

    def test_timeout_kind(self):
        result = failure_from({"ok": False, "error": "Command timed out (5s)", "timeout": True}, kind="download")
        assert result.error_kind == "timeout"


class TestCommandInstaller:
    def test_install_when_absent(self, runner):
        result = CommandInstaller("rustup", ["install-rust"], ["rustup", "update"]).apply(ABSENT)
        assert result.ok
        assert runner.calls == ["install-rust"]

    def test_upgrade_when_present(self, runner):
        installer = CommandInstaller("rustup", ["install-rust"], ["rustup", "update"])
        installer.apply(PresenceResult.found("1.0"))
        assert runner.calls == ["rustup update"]

    def test_present_without_upgrade_command(self, runner):
        result = CommandInstaller("x", ["install-x"]).apply(PresenceResult.found("1.0"))
        assert result.ok
        assert result.version == "1.0"
        assert runner.calls == []

    def test_failure(self, runner):
        runner.default = failed()
        assert not CommandInstaller("x", ["install-x"]).apply(ABSENT).ok


# ── Homebrew ─────────────────────────────────────────────────────────


class TestBrewFormulaInstaller:
    @pytest.fixture(autouse=True)
    def post_probe(self, monkeypatch):
        monkeypatch.setattr(
            homebrew.BrewPackageProbe, "probe",
            lambda self, capability: PresenceResult.found("2.44.0"),
        )

    def test_install(self, runner):
        result = BrewFormulaInstaller("git", notes=["set identity"]).apply(ABSENT)
        assert result.ok
        assert result.version == "2.44.0"
        assert result.notes == ["set identity"]
        assert runner.ran("install git")

    def test_cask(self, runner):
        BrewFormulaInstaller("visual-studio-code", cask=True).apply(ABSENT)
        assert runner.ran("install --cask visual-studio-code")

    def test_install_failure(self, runner):
        runner.default = failed(stderr="Error: No available formula")
        result = BrewFormulaInstaller("nope").apply(ABSENT)
        assert not result.ok
        assert "No available formula" in result.message

    def test_upgrade_failure_is_a_note(self, runner):
        runner.script = {"upgrade": failed()}
        result = BrewFormulaInstaller("git").apply(PresenceResult.found("2.43.0"))
        assert result.ok
        assert any("brew upgrade git failed" in n for n in result.notes)


# ── Privilege ────────────────────────────────────────────────────────


class TestPrivilegeInstaller:
    @pytest.fixture(autouse=True)
    def not_root(self, monkeypatch):
        monkeypatch.setattr(privilege.os, "geteuid", lambda: 501)

    def test_acquire_and_release(self, runner):
        installer = PrivilegeInstaller()
        assert installer.apply(ABSENT).ok
        installer.release()
        assert runner.calls == ["sudo -v", "sudo -k"]

    def test_refused(self, runner):
        runner.default = failed()
        installer = PrivilegeInstaller()
        result = installer.apply(ABSENT)
        assert result.error_kind == "privilege"
        installer.release()
        assert runner.calls == ["sudo -v"]


# ── Xcode ────────────────────────────────────────────────────────────


class TestXcodeCltInstaller:
    def test_present_does_nothing(self, runner):
        assert XcodeCltInstaller().apply(PresenceResult.found()).ok
        assert runner.calls == []

    def test_polls_until_installed(self, runner):
        checks = iter([failed(), failed(), {**OK, "stdout": "/Library/Developer/CommandLineTools\n"}])
        runner.script = {"xcode-select -p": lambda _: next(checks)}
        sleeps: list[float] = []
        result = XcodeCltInstaller(poll_interval=1, sleep=sleeps.append).apply(ABSENT)
        assert result.ok
        assert sleeps == [1, 1]

    def test_gives_up(self, runner):
        runner.script = {"xcode-select -p": failed()}
        result = XcodeCltInstaller(poll_interval=10, max_wait=30, sleep=lambda s: None).apply(ABSENT)
        assert result.error_kind == "timeout"


# ── Shell ────────────────────────────────────────────────────────────


class TestDefaultShellInstaller:
    def test_already_default(self, runner, tmp_path: Path):
        installer = DefaultShellInstaller(Path("/opt/homebrew/bin/zsh"), tmp_path / "shells")
        assert installer.apply(PresenceResult.found()).ok
        assert runner.calls == []

    def test_registers_and_changes(self, runner, tmp_path: Path):
        shells = tmp_path / "shells"
        shells.write_text("/bin/zsh\n")
        installer = DefaultShellInstaller(Path("/opt/homebrew/bin/zsh"), shells)
        result = installer.apply(ABSENT)
        assert result.ok
        assert runner.ran("sudo tee -a")
        assert runner.ran("chsh -s /opt/homebrew/bin/zsh")

    def test_registered_shell_not_added_again(self, runner, tmp_path: Path):
        shells = tmp_path / "shells"
        shells.write_text("/opt/homebrew/bin/zsh\n")
        DefaultShellInstaller(Path("/opt/homebrew/bin/zsh"), shells).apply(ABSENT)
        assert not runner.ran("tee")

    def test_chsh_failure(self, runner, tmp_path: Path):
        runner.script = {"chsh": failed()}
        shells = tmp_path / "shells"
        shells.write_text("/opt/homebrew/bin/zsh\n")
        result = DefaultShellInstaller(Path("/opt/homebrew/bin/zsh"), shells).apply(ABSENT)
        assert result.error_kind == "shell"
        assert "chsh -s" in result.message


class TestOhMyZshInstaller:
    def test_update_failure_is_a_note(self, runner, tmp_path: Path):
        runner.default = failed()
        result = OhMyZshInstaller(tmp_path / ".oh-my-zsh").apply(PresenceResult.found())
        assert result.ok
        assert result.notes

    def test_install_keeps_zshrc(self, runner, tmp_path: Path, monkeypatch):
        seen = {}

        def fake(cmd, **kwargs):
            seen.update(kwargs.get("env_overrides") or {})
            return OK

        monkeypatch.setattr(shell, "run_command", fake)
        assert OhMyZshInstaller(tmp_path / ".oh-my-zsh").apply(ABSENT).ok
        assert seen["KEEP_ZSHRC"] == "yes"
        assert seen["RUNZSH"] == "no"


class TestGitCloneInstaller:
    def test_failed_clone_cleans_up(self, runner, tmp_path: Path):
        dest = tmp_path / "plugins" / "zsh-z"

        def partial_clone(_):
            dest.mkdir(parents=True)
            return failed()

        runner.script = {"clone": partial_clone}
        result = GitCloneInstaller("git-clone:zsh-z", "https://example.com/z.git", dest).apply(ABSENT)
        assert not result.ok
        assert not dest.exists()

    def test_pull_when_present(self, runner, tmp_path: Path):
        result = GitCloneInstaller("g", "u", tmp_path, notes=["activate"]).apply(PresenceResult.found())
        assert result.ok
        assert result.notes == ["activate"]
        assert runner.ran("pull")


# ── Docker Desktop ───────────────────────────────────────────────────


class TestDockerDesktopInstaller:
    def test_present_only_notes_updater(self, runner, tmp_path: Path):
        result = DockerDesktopInstaller("arm64", tmp_path).apply(PresenceResult.found("4.28.0"))
        assert result.ok
        assert result.version == "4.28.0"
        assert runner.calls == []

    def test_download_failure(self, runner, tmp_path: Path):
        runner.script = {"curl": failed()}
        result = DockerDesktopInstaller("arm64", tmp_path).apply(ABSENT)
        assert result.error_kind == "download"
        assert not runner.ran("hdiutil")

    def test_mount_failure(self, runner, tmp_path: Path):
        runner.script = {"hdiutil attach": failed()}
        result = DockerDesktopInstaller("amd64", tmp_path).apply(ABSENT)
        assert result.error_kind == "mount"

    def test_copy_failure_detaches_and_removes_app(self, runner, tmp_path: Path):
        app = tmp_path / "Docker.app"

        def partial_copy(_):
            app.mkdir()
            return failed()

        runner.script = {"cp -R": partial_copy}
        result = DockerDesktopInstaller("arm64", tmp_path).apply(ABSENT)
        assert not result.ok
        assert runner.ran("hdiutil detach")
        assert not app.exists()

    def test_success_reports_first_launch(self, runner, tmp_path: Path):
        result = DockerDesktopInstaller("arm64", tmp_path).apply(ABSENT)
        assert result.ok
        assert docker.FIRST_LAUNCH_NOTE in result.notes
        assert runner.ran("desktop.docker.com/mac/main/arm64/Docker.dmg")


# ── nvm / Node ───────────────────────────────────────────────────────


class TestNvm:
    def test_failed_update_is_a_note(self, runner, tmp_path: Path):
        runner.default = failed()
        result = NvmInstaller(tmp_path / ".nvm").apply(PresenceResult.found("0.39.0"))
        assert result.ok
        assert result.version == "0.39.0"
        assert result.notes

    def test_install_failure(self, runner, tmp_path: Path):
        runner.default = failed()
        assert not NvmInstaller(tmp_path / ".nvm").apply(ABSENT).ok

    def test_install_does_not_touch_profile(self, tmp_path: Path, monkeypatch):
        seen = {}

        def fake(cmd, **kwargs):
            seen.update(kwargs.get("env_overrides") or {})
            return OK

        monkeypatch.setattr(nvm, "run_command", fake)
        result = NvmInstaller(tmp_path / ".nvm", "v0.40.1").apply(ABSENT)
        assert result.version == "0.40.1"
        assert seen["PROFILE"] == "/dev/null"

    def test_node_current_is_latest(self, runner, tmp_path: Path):
        runner.script = {"version-remote": {**OK, "stdout": "v22.11.0\n"}}
        result = NodeLtsInstaller(tmp_path).apply(PresenceResult.found("22.11.0"))
        assert result.version == "22.11.0"
        assert not runner.ran("nvm install")

    def test_node_installs_and_sets_default(self, runner, tmp_path: Path):
        runner.script = {
            "version-remote": {**OK, "stdout": "v22.11.0\n"},
            "nvm version": {**OK, "stdout": "v22.11.0\n"},
        }
        result = NodeLtsInstaller(tmp_path).apply(PresenceResult.found("20.1.0"))
        assert result.version == "22.11.0"
        assert runner.ran("nvm install 'lts/*'")
        assert runner.ran("nvm alias default 'lts/*'")


# ── Probes ───────────────────────────────────────────────────────────


class TestProbes:
    def test_path_probe(self, tmp_path: Path):
        cap = Capability(name="oh-my-zsh")
        assert not PathProbe(tmp_path / "missing").probe(cap).present
        assert PathProbe(tmp_path).probe(cap).present

    def test_path_probe_non_empty(self, tmp_path: Path):
        script = tmp_path / "nvm.sh"
        script.write_text("")
        assert not PathProbe(script, non_empty=True).probe(Capability(name="nvm")).present

    def test_command_probe_missing_binary(self):
        probe = CommandProbe(["definitely-not-a-real-binary-xyz"])
        assert not probe.probe(Capability(name="x")).present

    def test_read_version_missing_binary(self):
        assert read_version(["definitely-not-a-real-binary-xyz", "--version"]) is None

    def test_default_shell_probe(self, monkeypatch):
        monkeypatch.setenv("SHELL", "/opt/homebrew/bin/zsh")
        cap = Capability(name="default-shell")
        assert DefaultShellProbe(Path("/opt/homebrew/bin/zsh")).probe(cap).present
        assert not DefaultShellProbe(Path("/usr/local/bin/zsh")).probe(cap).present

    def test_mutation_probe(self, tmp_path: Path):
        mutation = LineMutation(tmp_path / ".zshrc", "alias art='php artisan'")
        probe = MutationProbe([mutation])
        cap = Capability(name="shell-aliases")
        assert not probe.probe(cap).present
        mutation.apply(ProfileEditor())
        assert probe.probe(cap).present

    def test_app_bundle_probe(self, tmp_path: Path):
        app = tmp_path / "Docker.app"
        cap = Capability(name="docker-desktop")
        assert not AppBundleProbe(app).probe(cap).present

        (app / "Contents").mkdir(parents=True)
        with (app / "Contents" / "Info.plist").open("wb") as f:
            plistlib.dump({"CFBundleShortVersionString": "4.28.0"}, f)
        result = AppBundleProbe(app).probe(cap)
        assert result.present
        assert result.version == "4.28.0"

    def test_executable_probe_reads_version(self, tmp_path: Path, monkeypatch):
        tool = tmp_path / "gotool"
        tool.write_text("#!/bin/sh\necho 'gotool version go1.23.2 darwin/arm64'\n")
        tool.chmod(0o755)
        monkeypatch.setenv("PATH", str(tmp_path))
        result = ExecutableProbe("gotool", ["version"], pattern=r"go(\d+\.\d+\.\d+)").probe(
            Capability(name="go")
        )
        assert result.present
        assert result.version == "1.23.2"
        assert result.detail == str(tool)

    def test_executable_probe_fallback(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path / "empty"))
        brew = tmp_path / "brew"
        brew.write_text("#!/bin/sh\necho 'Homebrew 4.4.1'\n")
        brew.chmod(0o755)
        cap = Capability(name="homebrew")
        assert not ExecutableProbe("brew").probe(cap).present
        result = ExecutableProbe("brew", fallback=brew).probe(cap)
        assert result.present
        assert result.version == "4.4.1"

    def test_homebrew_probe_absent(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        monkeypatch.setattr(homebrew, "brew_bin", lambda arch=None: tmp_path / "no-brew")
        assert not HomebrewProbe("arm64").probe(Capability(name="homebrew")).present

    def test_nvm_probes_absent_without_script(self, tmp_path: Path):
        cap = Capability(name="nvm")
        (tmp_path / "nvm.sh").write_text("")
        assert not NvmProbe(tmp_path).probe(cap).present
        assert not NodeProbe(tmp_path / "missing").probe(cap).present

    def test_nvm_probe_permission_error(self, tmp_path: Path, monkeypatch):
        def denied(self):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(Path, "is_file", denied)
        with pytest.raises(ProbeError):
            NvmProbe(tmp_path).probe(Capability(name="nvm"))
        with pytest.raises(ProbeError):
            NodeProbe(tmp_path).probe(Capability(name="node"))
