"""
Error taxonomy for provisioning runs.

Only ``ConfigurationError`` escapes the engine. Everything else is
caught at the step boundary and recorded as an Outcome.
"""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base class for all provisioning errors."""


class ConfigurationError(ProvisioningError):
    """The step graph is malformed (cycle, duplicate, unknown prerequisite).

    Raised before any probe or installer is called.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ProbeError(ProvisioningError):
    """A probe hit a genuine I/O fault (not a plain "not found")."""


class InstallError(ProvisioningError):
    """An installer could not converge its capability."""

    def __init__(self, message: str, kind: str = "install"):
        self.kind = kind
        self.message = message
        super().__init__(message)


class ProfileIoError(ProvisioningError):
    """Reading or writing a shell profile failed."""
