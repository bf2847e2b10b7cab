"""
Adapters — probes, installers and the profile editor.

Everything that touches the host lives under this package.
"""

from macsetup.adapters.base import Installer, StateProbe

__all__ = ["Installer", "StateProbe"]
