"""CLI entry point: nvim-test-runner.

Subcommands:
    nvim-test-runner init                    # Write a config template
    nvim-test-runner run [-s]                # Resolve dependencies and run tests
    nvim-test-runner deps                    # Show materialized remote dependencies
    nvim-test-runner clean                   # Remove fetched dependencies and state
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import sys
from pathlib import Path

import click
import structlog

from nvim_test_runner.aggregator import EXIT_HARNESS_ERROR, Summary
from nvim_test_runner.core.logging import setup_logging
from nvim_test_runner.exceptions import RunnerError
from nvim_test_runner.executor import Outcome
from nvim_test_runner.models.config import CONFIG_FILENAME, CONFIG_TEMPLATE
from nvim_test_runner.runner import RunSettings, TestRunner
from nvim_test_runner.state_store import StateStore

log = structlog.get_logger("nvim_test_runner.cli")

_directory_option = click.option(
    "-C",
    "--directory",
    default=".",
    type=click.Path(exists=True, file_okay=False),
    help="Plugin root to run in",
)
_state_option = click.option(
    "--state", "state_path", default=None, help="State file (default: .test/state.json)"
)


def _display(path: Path, cwd: Path) -> str:
    try:
        return str(path.relative_to(cwd))
    except ValueError:
        return str(path)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Run tests for Neovim plugins."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command("init")
@click.option("-o", "--output", default=CONFIG_FILENAME, help="Output file path")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init(output: str, force: bool) -> None:
    """Generate a config template JSON file."""
    path = Path(output)
    if path.exists() and not force:
        click.echo(f"Error: {output} already exists (use --force to overwrite)", err=True)
        sys.exit(EXIT_HARNESS_ERROR)
    path.write_text(json.dumps(CONFIG_TEMPLATE, indent=2) + "\n")
    click.echo(f"Config template written to {output}")
    click.echo("Edit the file, then run: nvim-test-runner run")


@main.command("run")
@click.option(
    "-s",
    "--skip-remote-check",
    is_flag=True,
    help="Trust the local clones of external dependencies without querying the remotes",
)
@_directory_option
@click.option("-c", "--config", "config_path", default=CONFIG_FILENAME, help="Config file")
@_state_option
@click.option("--nvim", default="nvim", help="Neovim executable")
@click.option(
    "-j", "--jobs", type=click.IntRange(min=1), default=None, help="Parallel test processes"
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-test timeout in seconds (a timed out test fails)",
)
@click.pass_context
def run(
    ctx: click.Context,
    skip_remote_check: bool,
    directory: str,
    config_path: str,
    state_path: str | None,
    nvim: str,
    jobs: int | None,
    timeout: float | None,
) -> None:
    """Resolve test dependencies, then run every test file in headless nvim."""
    verbose = ctx.obj.get("verbose", False)
    settings = RunSettings(
        cwd=Path(directory),
        config_path=Path(config_path),
        state_path=Path(state_path) if state_path else None,
        skip_remote_check=skip_remote_check,
        nvim=nvim,
        jobs=jobs,
        timeout=timeout,
        verbose=verbose,
    )
    runner = TestRunner(settings)

    def _report(outcome: Outcome) -> None:
        name = _display(outcome.test_file, settings.cwd)
        if outcome.passed:
            click.echo(click.style(f"✓ {name}", fg="blue"))
            return
        status = "timed out" if outcome.timed_out else f"exit {outcome.returncode}"
        click.echo(click.style(f"x {name} ({status})", fg="red"))
        if outcome.stderr.strip():
            click.echo(click.style(outcome.stderr.rstrip(), fg="red"))

    try:
        summary = asyncio.run(runner.run(on_outcome=_report))
    except RunnerError as e:
        log.error("cli.run_failed", error=str(e))
        click.echo(click.style(str(e), fg="red"), err=True)
        if verbose:
            _print_progress(runner)
        sys.exit(EXIT_HARNESS_ERROR)
    except OSError as e:
        # Exit 1 is reserved for failing tests
        log.exception("cli.run_crashed", error=str(e))
        click.echo(click.style(f"Unexpected filesystem error: {e}", fg="red"), err=True)
        if verbose:
            _print_progress(runner)
        sys.exit(EXIT_HARNESS_ERROR)

    if verbose:
        _print_progress(runner)
    _print_summary(summary)
    sys.exit(summary.exit_code)


def _print_summary(summary: Summary) -> None:
    if summary.total == 0:
        click.echo("No test files found")
    elif summary.ok:
        click.echo(click.style(f"{summary.total} test(s) passed", fg="green"))
    else:
        click.echo(
            click.style(
                f"{summary.failed_count} test(s) failed ({summary.total} run)", fg="red"
            )
        )


def _print_progress(runner: TestRunner) -> None:
    summary = runner.progress.get_summary()
    click.echo(f"\nPipeline summary (total: {summary['total_duration']}s):")
    for p in summary["phases"]:
        status_icon = {
            "completed": "+",
            "failed": "!",
            "skipped": "-",
            "running": "~",
        }.get(p["status"], "?")
        duration = f" ({p['duration']}s)" if p["duration"] else ""
        detail = f" - {p['detail']}" if p["detail"] else ""
        error = f" ERROR: {p['error']}" if p["error"] else ""
        click.echo(f"  [{status_icon}] {p['phase']}{duration}{detail}{error}")


@main.command("deps")
@_directory_option
@_state_option
def deps(directory: str, state_path: str | None) -> None:
    """List the remote dependencies recorded in the state file."""
    settings = RunSettings(cwd=Path(directory), state_path=Path(state_path) if state_path else None)
    state = StateStore(settings.state_path).load()
    if not state.test_dependencies:
        click.echo("No test dependencies recorded.")
        return
    for entry in state.test_dependencies:
        pin = f"  pin={entry.pin}" if entry.pin else ""
        click.echo(f"  {entry.hash[:12]}  {entry.uri} @ {entry.branch or 'HEAD'}{pin}")


@main.command("clean")
@_directory_option
@_state_option
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
def clean(directory: str, state_path: str | None, yes: bool) -> None:
    """Delete fetched test dependencies and the state file."""
    settings = RunSettings(cwd=Path(directory), state_path=Path(state_path) if state_path else None)
    targets = [p for p in (settings.dep_dir, settings.state_path) if p.exists()]
    if not targets:
        click.echo("Nothing to clean.")
        return
    if not yes:
        click.confirm(
            "Remove " + ", ".join(_display(p, settings.cwd) for p in targets) + "?", abort=True
        )
    for path in targets:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            os.remove(path)
        click.echo(f"Removed {_display(path, settings.cwd)}")


if __name__ == "__main__":
    main()
