"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from macsetup.adapters.mock import FakeHost, MockInstaller, MockProbe
from macsetup.adapters.shell.profile import ProfileEditor
from macsetup.core.models.step import Capability, Step


@pytest.fixture
def host() -> FakeHost:
    """An empty fake machine."""
    return FakeHost()


@pytest.fixture
def editor() -> ProfileEditor:
    return ProfileEditor()


@pytest.fixture
def profile(tmp_path: Path) -> Path:
    """Path of a (not yet existing) shell profile."""
    return tmp_path / ".zprofile"


@pytest.fixture
def make_step(host: FakeHost):
    """Factory for steps backed by the shared fake host."""

    def _make(
        name: str,
        requires: list[str] | None = None,
        installer: MockInstaller | None = None,
        **kwargs,
    ) -> Step:
        min_version = kwargs.pop("min_version", None)
        return Step(
            capability=Capability(name=name, min_version=min_version),
            probe=kwargs.pop("probe", None) or MockProbe(host),
            installer=installer or MockInstaller(name, host),
            requires=requires or [],
            **kwargs,
        )

    return _make
