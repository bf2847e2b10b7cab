"""
macsetup — CLI entrypoint.

Usage:
    macsetup                  # same as: macsetup apply
    macsetup apply --dry-run
    macsetup plan --json
    python -m macsetup --help
"""

from __future__ import annotations

import json
import os
import platform
import sys
from pathlib import Path
from typing import NoReturn

import click

from macsetup import __version__
from macsetup.adapters.shell.profile import ProfileEditor
from macsetup.core.catalog import build_steps
from macsetup.core.config.loader import ConfigError, Settings, load_settings
from macsetup.core.engine import ProvisioningEngine, exit_code, render
from macsetup.core.engine.dag import topological_order, validate_steps
from macsetup.core.errors import ConfigurationError
from macsetup.core.models.step import Step
from macsetup.core.observability.logging_config import resolve_level, setup_logging


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="macsetup")
@click.option("--verbose", "-v", is_flag=True, help="Show step progress.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors and the report.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Settings file (default: $MACSETUP_CONFIG or ~/.config/macsetup/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision this Mac as a developer workstation.

    Safe to re-run: anything already in place is left alone.
    """
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("MACSETUP_LOG_FILE"),
        log_file_level=os.environ.get("MACSETUP_LOG_FILE_LEVEL"),
    )

    if ctx.invoked_subcommand is None:
        ctx.invoke(apply)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Probe only; install and write nothing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the report as JSON.")
@click.option(
    "--parallel",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Run up to N independent steps at once.",
)
@click.option("--no-upgrade", is_flag=True, help="Leave tools that are already installed as they are.")
@click.pass_context
def apply(
    ctx: click.Context,
    dry_run: bool,
    as_json: bool,
    parallel: int,
    no_upgrade: bool,
) -> None:
    """Converge this machine to the workstation setup."""
    if platform.system() != "Darwin" and not dry_run:
        click.secho(
            f"❌ macsetup provisions macOS only (this is {platform.system()}). "
            "Use --dry-run to preview.",
            fg="red",
            err=True,
        )
        sys.exit(1)

    settings = _load_settings(ctx)
    if no_upgrade:
        settings = settings.model_copy(update={"upgrade": False})
    steps = _build_steps(settings)

    editor = ProfileEditor()
    engine = ProvisioningEngine(editor, dry_run=dry_run, max_workers=parallel)
    try:
        report = engine.run(steps)
    except ConfigurationError as e:
        _fail_configuration(e)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(render(report, color=True))
        if editor.writes and not ctx.obj.get("quiet", False):
            click.echo()
            click.secho(
                "Open a new terminal window to pick up the shell profile changes.",
                fg="cyan",
            )

    code = exit_code(report)
    if code:
        sys.exit(code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool) -> None:
    """Show the steps apply would run, in order, without probing."""
    steps = _build_steps(_load_settings(ctx))

    errors = validate_steps(steps)
    if errors:
        _fail_configuration(ConfigurationError(errors))
    ordered = topological_order(steps)

    if as_json:
        click.echo(json.dumps([_step_dict(s) for s in ordered], indent=2))
        return

    click.secho(f"\n📋 {len(ordered)} steps", fg="cyan", bold=True)
    width = max((len(s.name) for s in ordered), default=0)
    for i, step in enumerate(ordered, 1):
        critical = click.style(" [critical]", fg="red") if step.critical else ""
        requires = f"  ← {', '.join(step.requires)}" if step.requires else ""
        click.echo(f"  {i:>2}. {step.name.ljust(width)}  {step.capability.display}{requires}{critical}")
    click.echo()


# ── Helpers ─────────────────────────────────────────────────────


def _load_settings(ctx: click.Context) -> Settings:
    try:
        return load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def _build_steps(settings: Settings) -> list[Step]:
    try:
        return build_steps(settings)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def _fail_configuration(error: ConfigurationError) -> NoReturn:
    click.secho("❌ Invalid step configuration:", fg="red", bold=True, err=True)
    for message in error.errors:
        click.secho(f"   • {message}", fg="red", err=True)
    sys.exit(1)


def _step_dict(step: Step) -> dict:
    return {
        "name": step.name,
        "label": step.capability.display,
        "requires": list(step.requires),
        "critical": step.critical,
        "upgrade": step.upgrade,
        "min_version": step.capability.min_version,
        "installer": step.installer.name,
        "profile_files": sorted({str(m.path) for m in step.mutations}),
    }


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
