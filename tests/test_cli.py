"""
Tests for CLI commands — apply, plan, and global options.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from macsetup.adapters.mock import FakeHost, MockInstaller, MockProbe, failing_installer
from macsetup.adapters.shell.profile import LineMutation
from macsetup.core.models import Capability, Step
from macsetup.main import cli


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch):
    """Keep the real ~/.config and profiles out of CLI runs."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("SHELL", "/bin/zsh")
    monkeypatch.delenv("MACSETUP_CONFIG", raising=False)
    monkeypatch.delenv("MACSETUP_LOG_FILE", raising=False)
    monkeypatch.delenv("MACSETUP_LOG_LEVEL", raising=False)
    return tmp_path


@pytest.fixture
def on_macos(monkeypatch):
    monkeypatch.setattr("macsetup.main.platform.system", lambda: "Darwin")


class FakeCatalog:
    """Stands in for build_steps; records the settings it was given."""

    def __init__(self, home: Path, fail: str | None = None, critical: bool = False):
        self.host = FakeHost()
        self.home = home
        self.fail = fail
        self.critical = critical
        self.installers: dict[str, MockInstaller] = {}
        self.settings = None

    def __call__(self, settings):
        self.settings = settings
        steps = []
        for name, requires in [("homebrew", []), ("git", ["homebrew"]), ("go", ["homebrew"])]:
            if name == self.fail:
                installer = failing_installer(name, "download failed")
            else:
                installer = MockInstaller(name, self.host)
            self.installers[name] = installer
            mutations = []
            if name == "homebrew":
                mutations = [LineMutation(self.home / ".zprofile", "eval brew")]
            steps.append(Step(
                Capability(name=name),
                MockProbe(self.host),
                installer,
                requires=requires,
                mutations=mutations,
                critical=self.critical and name == self.fail,
            ))
        return steps


def _install_catalog(monkeypatch, catalog: FakeCatalog) -> FakeCatalog:
    monkeypatch.setattr("macsetup.main.build_steps", catalog)
    return catalog


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "developer workstation" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestApplyCommand:
    def test_all_ok(self, monkeypatch, on_macos, isolated_home):
        catalog = _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        result = CliRunner().invoke(cli, ["apply"])
        assert result.exit_code == 0, result.output
        assert "Setup complete" in result.output
        assert "Open a new terminal window" in result.output
        assert all(i.call_count == 1 for i in catalog.installers.values())
        assert "eval brew" in (isolated_home / ".zprofile").read_text()

    def test_no_arguments_runs_apply(self, monkeypatch, on_macos, isolated_home):
        _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        result = CliRunner().invoke(cli, [])
        assert result.exit_code == 0, result.output
        assert "Provisioning report" in result.output

    def test_failure_still_exits_zero(self, monkeypatch, on_macos, isolated_home):
        _install_catalog(monkeypatch, FakeCatalog(isolated_home, fail="homebrew"))
        result = CliRunner().invoke(cli, ["apply"])
        assert result.exit_code == 0
        assert "Setup completed with warnings" in result.output
        assert "prerequisite failed: homebrew" in result.output

    def test_critical_failure_exits_one(self, monkeypatch, on_macos, isolated_home):
        _install_catalog(monkeypatch, FakeCatalog(isolated_home, fail="homebrew", critical=True))
        result = CliRunner().invoke(cli, ["apply"])
        assert result.exit_code == 1
        assert "Setup aborted" in result.output

    def test_json(self, monkeypatch, on_macos, isolated_home):
        _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        result = CliRunner().invoke(cli, ["apply", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "all_ok"
        assert [s["name"] for s in data["steps"]] == ["homebrew", "git", "go"]

    def test_no_upgrade(self, monkeypatch, on_macos, isolated_home):
        catalog = _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        CliRunner().invoke(cli, ["apply", "--no-upgrade"])
        assert catalog.settings.upgrade is False

    def test_parallel(self, monkeypatch, on_macos, isolated_home):
        _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        result = CliRunner().invoke(cli, ["apply", "--parallel", "3", "--json"])
        assert result.exit_code == 0
        assert [s["name"] for s in json.loads(result.stdout)["steps"]] == ["homebrew", "git", "go"]

    def test_parallel_must_be_positive(self, on_macos):
        result = CliRunner().invoke(cli, ["apply", "--parallel", "0"])
        assert result.exit_code == 2

    def test_refuses_non_macos(self, monkeypatch, isolated_home):
        catalog = _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        monkeypatch.setattr("macsetup.main.platform.system", lambda: "Linux")
        result = CliRunner().invoke(cli, ["apply"])
        assert result.exit_code == 1
        assert "macOS only" in result.output
        assert catalog.settings is None

    def test_dry_run_allowed_anywhere(self, monkeypatch, isolated_home):
        catalog = _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        monkeypatch.setattr("macsetup.main.platform.system", lambda: "Linux")
        result = CliRunner().invoke(cli, ["apply", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "(dry run)" in result.output
        assert all(i.call_count == 0 for i in catalog.installers.values())
        assert not (isolated_home / ".zprofile").exists()

    def test_invalid_settings_file(self, on_macos, tmp_path: Path):
        config = tmp_path / "bad.yml"
        config.write_text("aliases: [unclosed\n")
        result = CliRunner().invoke(cli, ["--config", str(config), "apply"])
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output

    def test_cycle_exits_one(self, monkeypatch, on_macos):
        host = FakeHost()

        def cyclic(settings):
            return [
                Step(Capability(name="a"), MockProbe(host), MockInstaller("a", host), requires=["b"]),
                Step(Capability(name="b"), MockProbe(host), MockInstaller("b", host), requires=["a"]),
            ]

        monkeypatch.setattr("macsetup.main.build_steps", cyclic)
        result = CliRunner().invoke(cli, ["apply"])
        assert result.exit_code == 1
        assert "Invalid step configuration" in result.output


class TestPlanCommand:
    def test_plan_default_catalog(self):
        result = CliRunner().invoke(cli, ["plan"])
        assert result.exit_code == 0, result.output
        assert "privilege" in result.output
        assert "[critical]" in result.output
        assert "shell-aliases" in result.output

    def test_plan_json(self, monkeypatch, isolated_home):
        _install_catalog(monkeypatch, FakeCatalog(isolated_home))
        result = CliRunner().invoke(cli, ["plan", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [s["name"] for s in data] == ["homebrew", "git", "go"]
        assert data[1]["requires"] == ["homebrew"]
        assert data[0]["profile_files"] == [str(isolated_home / ".zprofile")]

    def test_plan_respects_skip(self, isolated_home):
        config = isolated_home / "config.yml"
        config.write_text("skip: [docker-desktop]\n")
        result = CliRunner().invoke(cli, ["-c", str(config), "plan", "--json"])
        assert result.exit_code == 0
        names = [s["name"] for s in json.loads(result.stdout)]
        assert "docker-desktop" not in names
