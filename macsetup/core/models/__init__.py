"""
Domain models — Pydantic types for provisioning runs.

All models are re-exported here for convenient access:

    from macsetup.core.models import Capability, Step, Outcome, Report
"""

from macsetup.core.models.outcome import (
    InstallResult,
    Outcome,
    OutcomeKind,
    PresenceResult,
    Report,
    ReportEntry,
    RunStatus,
)
from macsetup.core.models.step import Capability, Step

__all__ = [
    # step.py
    "Capability",
    # outcome.py
    "InstallResult",
    "Outcome",
    "OutcomeKind",
    "PresenceResult",
    "Report",
    "ReportEntry",
    "RunStatus",
    "Step",
]
