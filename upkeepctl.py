#!/usr/bin/env python3
"""Upkeep management CLI."""

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click

from upkeep.base.config import Settings
from upkeep.base.errors import StoreFailure
from upkeep.coordinator import RunCoordinator, RunReport
from upkeep.policy.triggers import TriggerEvent
from upkeep.runtime import open_runtime
from upkeep.state.models import RunOutcome

T = TypeVar("T")

EXIT_STORE_FAILURE = 2


def _run(args: list[str], *, replace: bool = False) -> None:
    click.echo(
        f"  {click.style('>', dim=True)} {click.style(' '.join(args), dim=True)}\n"
    )
    if replace:
        os.execvp(args[0], args)
    result = subprocess.run(args)
    if result.returncode != 0:
        click.echo(
            f"  {click.style('✗', fg='red')} exited with code {result.returncode}"
        )
        sys.exit(result.returncode)


def _ok(text: str) -> None:
    click.echo(f"  {click.style('✓', fg='green')} {text}")


def _fail(text: str) -> None:
    click.echo(f"  {click.style('✗', fg='red')} {text}")


def _header(text: str) -> None:
    click.echo(f"\n  {click.style(text, fg='cyan', bold=True)}\n")


def _with_coordinator(
    action: Callable[[RunCoordinator, asyncio.Event], Awaitable[T]],
) -> T:
    """Run ``action`` against a fresh runtime; SIGINT/SIGTERM set the cancel event."""

    async def main() -> T:
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, cancel.set)

        async with open_runtime(Settings.from_env()) as runtime:
            return await action(runtime.coordinator, cancel)

    try:
        return asyncio.run(main())
    except StoreFailure as exc:
        _fail(f"state store unavailable: {exc}")
        sys.exit(EXIT_STORE_FAILURE)


def _report(report: RunReport) -> None:
    text = f"{report.event}: {report.outcome.value}"
    if report.detail:
        text += f" ({report.detail.splitlines()[-1]})"
    if report.outcome in (RunOutcome.SUCCEEDED, RunOutcome.SKIPPED):
        _ok(text)
        return
    _fail(text)
    sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Upkeep management CLI."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.argument("event", type=click.Choice([e.value for e in TriggerEvent]))
def trigger(event: str) -> None:
    """Evaluate a trigger and run maintenance if due."""
    _header(f"Trigger: {event}")
    report = _with_coordinator(
        lambda coordinator, cancel: coordinator.handle_trigger(
            TriggerEvent(event), cancel
        )
    )
    _report(report)


@cli.command()
def shutdown() -> None:
    """Run the pre-poweroff cleanup."""
    _header("Shutdown cleanup")
    report = _with_coordinator(
        lambda coordinator, cancel: coordinator.handle_shutdown(cancel)
    )
    _report(report)


@cli.command()
def nag() -> None:
    """Notify the user if maintenance is overdue."""
    _header("Nag check")
    report = _with_coordinator(lambda coordinator, _: coordinator.check_nag())
    if report.delivered:
        _ok(f"delivered {report.decision.value}")
    elif report.detail:
        _fail(f"{report.decision.value} not delivered: {report.detail}")
        sys.exit(1)
    else:
        _ok("nothing to report")


@cli.command()
def status() -> None:
    """Show the maintenance state."""
    current = _with_coordinator(lambda coordinator, _: coordinator.status())
    _header("Maintenance status")
    state = current.state
    click.echo(f"  last run:          {state.last_run_at or 'never'}")
    click.echo(f"  last nag:          {state.last_nag_at or 'never'}")
    click.echo(f"  grace started:     {state.grace_started_at or '-'}")
    click.echo(f"  first-run notice:  {'shown' if state.first_run_notice_shown else 'pending'}")
    click.echo(f"  due:               {'yes' if current.due else 'no'}")
    click.echo(f"  overdue:           {'yes' if current.overdue else 'no'}")


@cli.command()
@click.argument("uvicorn_args", nargs=-1)
def app(uvicorn_args: tuple[str, ...]) -> None:
    """Start the daemon (API + timers) under uvicorn."""
    _header("Starting Upkeep")
    _run(["uv", "run", "uvicorn", "upkeep.app:app", *uvicorn_args], replace=True)


@cli.command()
@click.argument("pytest_args", nargs=-1)
def test(pytest_args: tuple[str, ...]) -> None:
    """Run pytest."""
    _header("Running tests")
    _run(["uv", "run", "pytest", "tests/", "-v", *pytest_args], replace=True)


@cli.command()
def lint() -> None:
    """Run mypy."""
    _header("Running mypy")
    _run(["uv", "run", "mypy", "."])
    _ok("Type check passed")


if __name__ == "__main__":
    cli()
