"""
Provisioning engine — the central convergence loop.

The engine takes a list of Steps, validates and orders them by their
prerequisites, then for each step probes the host, runs the installer,
applies the step's profile mutations and classifies the result.

Flow:
    validate → order → (probe → install → wire profile → classify)* → report

Every per-step error is caught here and becomes a Failed outcome.
Only a malformed step graph (ConfigurationError) escapes ``run``;
a failed critical step stops the run and marks the report aborted.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

from macsetup.adapters.shell.profile import ProfileEditor
from macsetup.core.engine.dag import (
    enforce_parallel_safety,
    ready_steps,
    topological_order,
    validate_steps,
)
from macsetup.core.engine.reporter import GLYPHS
from macsetup.core.engine.version import check_minimum
from macsetup.core.errors import (
    ConfigurationError,
    InstallError,
    ProbeError,
    ProfileIoError,
)
from macsetup.core.models.outcome import InstallResult, Outcome, PresenceResult, Report
from macsetup.core.models.step import Step

logger = logging.getLogger(__name__)

class ProvisioningEngine:
    """Converge the host to the state described by a list of Steps.

    Args:
        editor: Profile editor used for step mutations.
        dry_run: Probe only; never call installers or write profiles.
        max_workers: Above 1, independent steps run in parallel waves
            (see ``enforce_parallel_safety``).
    """

    def __init__(
        self,
        editor: ProfileEditor | None = None,
        *,
        dry_run: bool = False,
        max_workers: int = 1,
    ):
        self.editor = editor or ProfileEditor()
        self.dry_run = dry_run
        self.max_workers = max(1, max_workers)
        self._profile_lock = threading.Lock()

    # ── Run ─────────────────────────────────────────────────────

    def run(self, steps: list[Step]) -> Report:
        """Execute all steps and return the finalized report.

        Raises:
            ConfigurationError: The step graph is invalid. Raised before
                any probe or installer is called.
        """
        errors = validate_steps(steps)
        if errors:
            raise ConfigurationError(errors)

        ordered = topological_order(steps)
        report = Report(run_id=generate_run_id(), dry_run=self.dry_run)
        outcomes: dict[str, Outcome] = {}

        logger.info("Provisioning %d steps (run %s)", len(ordered), report.run_id)
        try:
            if self.max_workers > 1:
                self._run_parallel(ordered, outcomes)
            else:
                self._run_sequential(ordered, outcomes)
        except KeyboardInterrupt:
            report.interrupted = True
            logger.warning(
                "Interrupted after %d of %d steps", len(outcomes), len(ordered),
            )
        finally:
            self._release(ordered)

        # Record in topological order, whatever order steps finished in.
        for step in ordered:
            if step.name in outcomes:
                report.record(
                    step.name,
                    outcomes[step.name],
                    label=step.capability.display,
                    critical=step.critical,
                )
        report.finalize()
        logger.info("Run %s finished: %s", report.run_id, report.status)
        return report

    def _run_sequential(self, ordered: list[Step], outcomes: dict[str, Outcome]) -> None:
        for step in ordered:
            skip = self._gate(step, outcomes)
            outcome = skip if skip is not None else self.execute_step(step)
            outcomes[step.name] = outcome
            _log_outcome(step, outcome)
            if step.critical and outcome.failed:
                logger.error("Critical step '%s' failed — aborting run", step.name)
                return

    def _run_parallel(self, ordered: list[Step], outcomes: dict[str, Outcome]) -> None:
        remaining = list(ordered)
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            while remaining:
                ready = ready_steps(remaining, set(outcomes), set())
                if not ready:
                    break

                runnable: list[Step] = []
                for step in ready:
                    skip = self._gate(step, outcomes)
                    if skip is not None:
                        outcomes[step.name] = skip
                        _log_outcome(step, skip)
                    else:
                        runnable.append(step)

                wave = enforce_parallel_safety(runnable)[: self.max_workers]
                futures = {step.name: pool.submit(self.execute_step, step) for step in wave}
                for step in wave:
                    outcome = futures[step.name].result()
                    outcomes[step.name] = outcome
                    _log_outcome(step, outcome)

                remaining = [s for s in remaining if s.name not in outcomes]
                if any(s.critical and outcomes[s.name].failed for s in wave):
                    logger.error("Critical step failed — aborting run")
                    return

    def _gate(self, step: Step, outcomes: Mapping[str, Outcome]) -> Outcome | None:
        """Skip a step whose prerequisites were not satisfied."""
        for dep in step.requires:
            prior = outcomes.get(dep)
            if prior is None or prior.failed:
                return Outcome.skip(f"prerequisite failed: {dep}")
            if prior.skipped and not self.dry_run:
                return Outcome.skip(f"prerequisite skipped: {dep}")
        return None

    def _release(self, steps: list[Step]) -> None:
        seen: set[int] = set()
        for step in steps:
            installer = step.installer
            if id(installer) in seen:
                continue
            seen.add(id(installer))
            try:
                installer.release()
            except Exception as e:
                logger.warning("Releasing %r failed: %s", installer, e)

    # ── Single step ─────────────────────────────────────────────

    def execute_step(self, step: Step) -> Outcome:
        """Probe, install, wire and classify one step. Never raises
        (except KeyboardInterrupt)."""
        start = time.monotonic()
        try:
            outcome = self._converge(step)
        except Exception as e:
            logger.exception("Step '%s' raised unexpectedly", step.name)
            outcome = Outcome.failure("unexpected", f"Unexpected error: {e}")
        elapsed_ms = int((time.monotonic() - start) * 1000)
        return outcome.model_copy(update={"duration_ms": elapsed_ms})

    def _converge(self, step: Step) -> Outcome:
        capability = step.capability
        current = self._probe(step)
        meets_min = check_minimum(current.version, capability.min_version)["valid"]

        if self.dry_run:
            if current.present and meets_min:
                return Outcome.already_satisfied(current.version)
            action = "upgrade" if current.present else "install"
            return Outcome.skip(f"dry run: would {action}")

        if current.present and meets_min and not step.upgrade:
            return self._wire(step, Outcome.already_satisfied(current.version))

        try:
            result = step.installer.apply(current)
        except InstallError as e:
            return Outcome.failure(e.kind, e.message)
        if not result.ok:
            return Outcome.failure(result.error_kind or "install", result.message)

        check = check_minimum(result.version, capability.min_version)
        if not check["valid"]:
            return Outcome.failure("version", check["message"], notes=result.notes)
        if check.get("unknown") and capability.min_version:
            logger.warning(
                "Cannot verify %s >= %s (version unknown)", capability.name, capability.min_version,
            )

        return self._wire(step, classify(current, result))

    def _probe(self, step: Step) -> PresenceResult:
        try:
            return step.probe.probe(step.capability)
        except ProbeError as e:
            logger.warning("Probe for '%s' failed, treating as absent: %s", step.name, e)
            return PresenceResult.absent(f"probe error: {e}")

    def _wire(self, step: Step, outcome: Outcome) -> Outcome:
        """Apply the step's profile mutations.

        After an install or upgrade every mutation is (re)written. When
        the capability was already satisfied only the mutations that
        are missing are applied, so a converged host sees no writes.
        """
        if outcome.kind == "already_satisfied":
            pending = [m for m in step.mutations if not m.is_applied()]
        else:
            pending = list(step.mutations)
        if not pending:
            return outcome

        with self._profile_lock:
            try:
                for mutation in pending:
                    mutation.apply(self.editor)
            except ProfileIoError as e:
                return Outcome.failure(
                    "io",
                    f"Installed but not wired into the environment: {e}",
                    notes=outcome.notes,
                )
        return outcome


def classify(current: PresenceResult, result: InstallResult) -> Outcome:
    """Turn (what was there, what the installer did) into an Outcome."""
    if not current.present:
        return Outcome.installed(result.version, notes=result.notes)
    if result.version and current.version and result.version != current.version:
        return Outcome.upgraded(current.version, result.version, notes=result.notes)
    return Outcome.already_satisfied(result.version or current.version, notes=result.notes)


def _log_outcome(step: Step, outcome: Outcome) -> None:
    detail = outcome.message or outcome.reason or (outcome.version or "")
    logger.info(
        "%s %s → %s %s",
        GLYPHS.get(outcome.kind, ("?", None))[0],
        step.name,
        outcome.kind,
        detail,
    )


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
