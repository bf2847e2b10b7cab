"""
Adapter base — the contract between the engine and the host.

Probes look, installers act. The engine only talks to the host
through these two interfaces, never directly to external tools.

To add a new capability:
    1. Pick (or subclass) a StateProbe that detects it
    2. Subclass Installer and implement ``name`` and ``apply``
    3. Declare a Step for it in the catalog
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from macsetup.core.models.outcome import InstallResult, PresenceResult
from macsetup.core.models.step import Capability


class StateProbe(ABC):
    """Read-only detector of a capability's current state.

    ``probe`` must never raise for "not found"; absence is a normal
    result. Raise ``ProbeError`` only for real I/O faults such as a
    permission error while reading a directory.
    """

    @abstractmethod
    def probe(self, capability: Capability) -> PresenceResult:
        """Inspect the host and report whether the capability is present."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class Installer(ABC):
    """Performs the install or upgrade for one capability.

    ``apply`` must be safe both on a fresh host (``current.present`` is
    False) and when the capability already exists, in which case it
    upgrades in place or does nothing. A failed call must leave the
    host no worse than before: each installer cleans up its own
    temporary files.

    Installers may either return ``InstallResult.failure(...)`` or
    raise ``InstallError``; the engine handles both.
    """

    #: Shared resource this installer holds while running (e.g. "brew").
    #: Installers with the same lock group never run concurrently.
    lock_group: str | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Installer identifier (e.g., 'brew-formula', 'docker-desktop')."""

    @abstractmethod
    def apply(self, current: PresenceResult) -> InstallResult:
        """Converge the capability, given what the probe found."""

    def release(self) -> None:
        """Release any session or resource held across the run.

        Called once by the engine when the run ends, including when it
        is interrupted. No-op by default.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
