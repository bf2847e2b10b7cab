"""
Probe, install and outcome models — the execution contract.

Probes return PresenceResults, installers return InstallResults, and
the engine turns both into one Outcome per step. Outcomes accumulate
into a Report, which is the only surface for failures.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


OutcomeKind = Literal["already_satisfied", "installed", "upgraded", "skipped", "failed"]
RunStatus = Literal["all_ok", "completed_with_warnings", "aborted"]


class PresenceResult(BaseModel):
    """What a probe found on the host: absent, or present at a version."""

    model_config = ConfigDict(frozen=True)

    present: bool = False
    version: str | None = None
    detail: str = ""

    @classmethod
    def absent(cls, detail: str = "") -> PresenceResult:
        return cls(present=False, detail=detail)

    @classmethod
    def found(cls, version: str | None = None, detail: str = "") -> PresenceResult:
        return cls(present=True, version=version, detail=detail)


class InstallResult(BaseModel):
    """Result of an installer call."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    version: str | None = None
    error_kind: str = ""
    message: str = ""
    notes: list[str] = Field(default_factory=list)

    @classmethod
    def success(
        cls,
        version: str | None = None,
        notes: list[str] | None = None,
        message: str = "",
    ) -> InstallResult:
        return cls(ok=True, version=version, notes=notes or [], message=message)

    @classmethod
    def failure(cls, kind: str, message: str) -> InstallResult:
        return cls(ok=False, error_kind=kind, message=message)


class Outcome(BaseModel):
    """Classification of one executed step.

    Exactly one of the constructors below is used for each step;
    the fields that don't apply to a kind stay None/empty.
    """

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    detected_version: str | None = None
    old_version: str | None = None
    new_version: str | None = None
    reason: str = ""
    error_kind: str = ""
    message: str = ""
    notes: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.kind in ("already_satisfied", "installed", "upgraded")

    @property
    def failed(self) -> bool:
        return self.kind == "failed"

    @property
    def skipped(self) -> bool:
        return self.kind == "skipped"

    @property
    def version(self) -> str | None:
        """Best known version after the step ran."""
        return self.new_version or self.detected_version

    @classmethod
    def already_satisfied(cls, version: str | None = None, **kwargs: Any) -> Outcome:
        return cls(kind="already_satisfied", detected_version=version, **kwargs)

    @classmethod
    def installed(cls, version: str | None = None, **kwargs: Any) -> Outcome:
        return cls(kind="installed", new_version=version, **kwargs)

    @classmethod
    def upgraded(
        cls, old_version: str | None, new_version: str | None, **kwargs: Any
    ) -> Outcome:
        return cls(
            kind="upgraded",
            old_version=old_version,
            new_version=new_version,
            **kwargs,
        )

    @classmethod
    def skip(cls, reason: str, **kwargs: Any) -> Outcome:
        return cls(kind="skipped", reason=reason, **kwargs)

    @classmethod
    def failure(cls, error_kind: str, message: str, **kwargs: Any) -> Outcome:
        return cls(kind="failed", error_kind=error_kind, message=message, **kwargs)


class ReportEntry(BaseModel):
    """A (capability name, Outcome) pair."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str = ""
    critical: bool = False
    outcome: Outcome


class Report(BaseModel):
    """Ordered outcomes of a single run plus its terminal status.

    Created empty at run start, appended to as steps complete, and
    finalized once at the end. Never persisted between runs.
    """

    run_id: str = ""
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""
    status: RunStatus = "all_ok"
    dry_run: bool = False
    interrupted: bool = False
    entries: list[ReportEntry] = Field(default_factory=list)

    def record(
        self,
        name: str,
        outcome: Outcome,
        label: str = "",
        critical: bool = False,
    ) -> None:
        self.entries.append(
            ReportEntry(name=name, label=label, critical=critical, outcome=outcome)
        )

    def get(self, name: str) -> Outcome | None:
        """Look up the outcome recorded for a capability."""
        for entry in self.entries:
            if entry.name == name:
                return entry.outcome
        return None

    @property
    def outcomes(self) -> dict[str, Outcome]:
        return {e.name: e.outcome for e in self.entries}

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def failed(self) -> int:
        return sum(1 for e in self.entries if e.outcome.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for e in self.entries if e.outcome.skipped)

    @property
    def critical_failed(self) -> bool:
        return any(e.critical and e.outcome.failed for e in self.entries)

    def finalize(self) -> None:
        """Derive the terminal status and stamp the end time."""
        self.ended_at = _now_iso()
        if self.interrupted or self.critical_failed:
            self.status = "aborted"
        elif self.failed or self.skipped:
            self.status = "completed_with_warnings"
        else:
            self.status = "all_ok"

    def count_by_kind(self) -> dict[str, int]:
        counts: dict[str, int] = {
            "already_satisfied": 0,
            "installed": 0,
            "upgraded": 0,
            "skipped": 0,
            "failed": 0,
        }
        for e in self.entries:
            counts[e.outcome.kind] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "dry_run": self.dry_run,
            "interrupted": self.interrupted,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "total": self.total,
            "counts": self.count_by_kind(),
            "steps": [e.model_dump(mode="json") for e in self.entries],
        }
