"""
Reporter — render a Report for the operator and derive the exit code.

Ordinary step failures still exit 0: convergence is best-effort and
the report is the place to read about failures. Only an aborted run
(critical failure or interrupt) exits non-zero.
"""

from __future__ import annotations

import click

from macsetup.core.models.outcome import Outcome, Report, RunStatus

_EXIT_CODES: dict[RunStatus, int] = {
    "all_ok": 0,
    "completed_with_warnings": 0,
    "aborted": 1,
}

GLYPHS = {
    "already_satisfied": ("✓", "green"),
    "installed": ("✓", "green"),
    "upgraded": ("↑", "cyan"),
    "skipped": ("⊘", "yellow"),
    "failed": ("✗", "red"),
}

_STATUS_TEXT = {
    "all_ok": ("Setup complete", "green"),
    "completed_with_warnings": ("Setup completed with warnings", "yellow"),
    "aborted": ("Setup aborted", "red"),
}


def exit_code(report: Report) -> int:
    return _EXIT_CODES[report.status]


def describe(outcome: Outcome) -> str:
    """One-line description of an outcome."""
    if outcome.kind == "already_satisfied":
        if outcome.detected_version:
            return f"already satisfied ({outcome.detected_version})"
        return "already satisfied"
    if outcome.kind == "installed":
        return f"installed {outcome.new_version}" if outcome.new_version else "installed"
    if outcome.kind == "upgraded":
        return f"upgraded {outcome.old_version} → {outcome.new_version}"
    if outcome.kind == "skipped":
        return f"skipped: {outcome.reason}"
    return f"failed [{outcome.error_kind}]: {outcome.message}"


def summary(report: Report) -> dict:
    return {"status": report.status, "total": report.total, **report.count_by_kind()}


def render(report: Report, color: bool = False) -> str:
    """Format a report as text.

    Args:
        report: The finalized report.
        color: Add ANSI colors (for terminals).
    """

    def style(text: str, fg: str, bold: bool = False) -> str:
        return click.style(text, fg=fg, bold=bold) if color else text

    width = max((len(e.name) for e in report.entries), default=0)
    lines: list[str] = []

    title = "Provisioning report"
    if report.dry_run:
        title += " (dry run)"
    lines.append(style(title, "cyan", bold=True))
    lines.append("")

    for entry in report.entries:
        glyph, fg = GLYPHS[entry.outcome.kind]
        critical = " [critical]" if entry.critical else ""
        lines.append(
            f"  {style(glyph, fg)} {entry.name.ljust(width)}  "
            f"{describe(entry.outcome)}{critical}"
        )

    notes = [(e.name, n) for e in report.entries for n in e.outcome.notes]
    if notes:
        lines.append("")
        lines.append(style("Notes:", "white", bold=True))
        for name, note in notes:
            lines.append(f"  • {name}: {note}")

    counts = report.count_by_kind()
    text, fg = _STATUS_TEXT[report.status]
    if report.interrupted:
        text += " (interrupted)"
    lines.append("")
    lines.append(
        style(text, fg, bold=True)
        + f" — {counts['installed']} installed, {counts['upgraded']} upgraded, "
        f"{counts['already_satisfied']} already satisfied, "
        f"{counts['skipped']} skipped, {counts['failed']} failed"
    )
    return "\n".join(lines)
