"""
Capability and Step — what to converge, and how.

A Capability names a piece of desired host state. A Step binds it to
a probe, an installer, its prerequisites and the profile changes that
wire it into the user's shell. Steps are built once at startup and
never mutated during a run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from macsetup.adapters.base import Installer, StateProbe
    from macsetup.adapters.shell.profile import ProfileMutation


class Capability(BaseModel):
    """A named unit of desired host state."""

    model_config = ConfigDict(frozen=True)

    name: str                       # unique identifier, e.g. "homebrew"
    label: str = ""                 # human label, e.g. "Homebrew"
    min_version: str | None = None  # ">=" constraint on the probed version

    @property
    def display(self) -> str:
        return self.label or self.name


@dataclass(frozen=True)
class Step:
    """The executable unit: capability + detection + installation."""

    capability: Capability
    probe: StateProbe
    installer: Installer
    requires: tuple[str, ...] = ()
    mutations: tuple[ProfileMutation, ...] = field(default_factory=tuple)
    critical: bool = False
    upgrade: bool = True

    def __post_init__(self) -> None:
        # Accept lists from callers, store tuples.
        object.__setattr__(self, "requires", tuple(self.requires))
        object.__setattr__(self, "mutations", tuple(self.mutations))

    @property
    def name(self) -> str:
        return self.capability.name

    @property
    def touches_profile(self) -> bool:
        return bool(self.mutations)
