"""
Provisioning engine — ordering, execution and reporting.
"""

from macsetup.core.engine.executor import ProvisioningEngine
from macsetup.core.engine.reporter import exit_code, render

__all__ = ["ProvisioningEngine", "exit_code", "render"]
