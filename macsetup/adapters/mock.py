"""
Mock adapters — test doubles for probes and installers.

A ``FakeHost`` is an in-memory stand-in for the machine: installers
write versions into it, probes read them back. This is enough to
exercise install/upgrade/idempotence paths without touching the host.
"""

from __future__ import annotations

from macsetup.adapters.base import Installer, StateProbe
from macsetup.core.errors import InstallError, ProbeError
from macsetup.core.models.outcome import InstallResult, PresenceResult
from macsetup.core.models.step import Capability


class FakeHost:
    """Capability name → installed version (None = present, unversioned)."""

    def __init__(self, installed: dict[str, str | None] | None = None):
        self.installed: dict[str, str | None] = dict(installed or {})

    def is_present(self, name: str) -> bool:
        return name in self.installed


class MockProbe(StateProbe):
    """Reads presence from a FakeHost.

    ``error`` makes every call raise ProbeError.
    """

    def __init__(self, host: FakeHost, error: str | None = None):
        self.host = host
        self.error = error
        self.calls: list[str] = []

    def probe(self, capability: Capability) -> PresenceResult:
        self.calls.append(capability.name)
        if self.error:
            raise ProbeError(self.error)
        if not self.host.is_present(capability.name):
            return PresenceResult.absent()
        return PresenceResult.found(self.host.installed[capability.name])


class MockInstaller(Installer):
    """Universal mock installer.

    By default succeeds and records ``version`` in the host. Can be
    configured to fail (returned failure), raise (InstallError or any
    other exception), or report a different version on upgrade.
    """

    def __init__(
        self,
        capability: str,
        host: FakeHost | None = None,
        version: str | None = "1.0.0",
        *,
        fail: str | None = None,
        raises: Exception | None = None,
        notes: list[str] | None = None,
        lock_group: str | None = None,
        call_log: list[str] | None = None,
    ):
        self.capability = capability
        self.host = host if host is not None else FakeHost()
        self.version = version
        self.fail = fail
        self.raises = raises
        self.notes = notes or []
        self.lock_group = lock_group
        self.released = 0
        self._call_log: list[PresenceResult] = []
        # Optional log shared between installers to assert ordering.
        self._shared_log = call_log

    @property
    def name(self) -> str:
        return f"mock:{self.capability}"

    @property
    def call_log(self) -> list[PresenceResult]:
        """All presence results this mock has been called with."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def apply(self, current: PresenceResult) -> InstallResult:
        self._call_log.append(current)
        if self._shared_log is not None:
            self._shared_log.append(self.capability)

        if self.raises is not None:
            raise self.raises
        if self.fail:
            return InstallResult.failure("install", self.fail)

        self.host.installed[self.capability] = self.version
        return InstallResult.success(self.version, notes=self.notes)

    def release(self) -> None:
        self.released += 1


def failing_installer(capability: str, message: str = "Mock failure") -> MockInstaller:
    return MockInstaller(capability, fail=message)


def raising_installer(capability: str, message: str = "Mock error", kind: str = "install") -> MockInstaller:
    return MockInstaller(capability, raises=InstallError(message, kind=kind))
