"""Command line entry point: ``e2e-probes <command>``."""

from __future__ import annotations

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .health_check import DEFAULT_CHECKS, build_health_report, format_health_report
from .playwright_helpers.auth import (
    SessionSnapshotError,
    check_snapshot_validity,
    load_session_snapshot,
    session_identity,
)
from .probe_modules.config import ProbeConfig
from .probe_modules.exit_codes import EXIT_BLOCKER_MISSING_AUTH, EXIT_SUCCESS
from .probe_modules.utils import load_probe_env
from .probe_phases.capture_auth import run_capture_auth
from .probe_phases.check_migrations import run_check_migrations
from .probe_phases.verify_orchestration import run_verify_orchestration
from .probe_phases.watch_task_events import run_watch_task_events

console = Console()


def config_panel(config: ProbeConfig) -> Panel:
    """Rich panel summarising the settings a probe will run with."""
    table = Table(show_header=False, box=None)
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Environment", config.environment)
    table.add_row("App", config.app_url)
    table.add_row("Backend", config.backend_url)
    table.add_row("Supabase", config.supabase_url or "[yellow]not set[/yellow]")
    table.add_row("Session", str(config.auth_state_path))
    table.add_row("Output", str(config.output_root))
    table.add_row("Headless", "yes" if config.headless else "no")

    return Panel(table, title="[bold blue]e2e-probes[/bold blue]", border_style="blue")


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Browser and API probes for onboarding, migrations and orchestration."""
    load_probe_env()
    ctx.obj = ProbeConfig.from_env()


@cli.command()
@click.argument("checks", nargs=-1, type=click.Choice(DEFAULT_CHECKS + ["all"]))
@click.option("--json", "as_json", is_flag=True, help="Emit JSON output")
@click.pass_obj
def health(config: ProbeConfig, checks: tuple, as_json: bool) -> None:
    """Check environment, services, session snapshot and browser."""
    targets = DEFAULT_CHECKS if not checks or "all" in checks else list(checks)
    payload = build_health_report(targets, config)

    if as_json:
        click.echo(payload.model_dump_json(indent=2))
    else:
        click.echo(format_health_report(payload))

    raise SystemExit(0 if payload.success else 1)


@cli.command("auth-status")
@click.pass_obj
def auth_status(config: ProbeConfig) -> None:
    """Show who the saved session belongs to and when it expires."""
    validity = check_snapshot_validity(config.auth_state_path, supabase_url=config.supabase_url)

    table = Table(show_header=False, box=None)
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Snapshot", str(config.auth_state_path))

    try:
        identity = session_identity(load_session_snapshot(config.auth_state_path), config.supabase_url)
    except SessionSnapshotError:
        identity = None
    if identity is not None:
        table.add_row("User ID", identity.user_id or "Unknown")
        table.add_row("Email", identity.email or "Unknown")

    if validity.valid:
        table.add_row("Status", "[green]Valid[/green]")
    else:
        table.add_row("Status", f"[red]Invalid[/red] ({validity.reason})")
    if validity.expires_at:
        table.add_row("Expires", validity.expires_at.isoformat())
    if validity.minutes_left is not None:
        table.add_row("Minutes left", str(validity.minutes_left))

    console.print(Panel(table, title="[bold blue]Session snapshot[/bold blue]", border_style="blue"))
    raise SystemExit(EXIT_SUCCESS if validity.valid else EXIT_BLOCKER_MISSING_AUTH)


@cli.command("capture-auth")
@click.option("--wait", default=300.0, type=float, help="Seconds to wait for sign-in (default: 300)")
@click.pass_obj
def capture_auth(config: ProbeConfig, wait: float) -> None:
    """Open a browser, wait for a manual sign-in and save the session."""
    console.print(config_panel(config))
    raise SystemExit(run_capture_auth(config, wait_timeout=wait))


@cli.command("verify-orchestration")
@click.option("--via", type=click.Choice(["api", "ui"]), default="api", help="How to create the task")
@click.option("--title", default=None, help="Task title (default: timestamped)")
@click.option("--interval", default=1.0, type=float, help="Seconds between event polls (default: 1)")
@click.option("--timeout", default=30.0, type=float, help="Seconds to wait for events (default: 30)")
@click.option("--headed", is_flag=True, help="Show the browser window")
@click.pass_obj
def verify_orchestration(
    config: ProbeConfig,
    via: str,
    title: str | None,
    interval: float,
    timeout: float,
    headed: bool,
) -> None:
    """Create a task and wait for orchestration events on it."""
    if headed:
        config = config.model_copy(update={"headless": False})
    console.print(config_panel(config))
    raise SystemExit(
        run_verify_orchestration(config, via=via, title=title, interval=interval, timeout=timeout)
    )


@cli.command("check-migrations")
@click.option("--apply", "apply_pending", is_flag=True, help="Click Apply before waiting")
@click.option("--interval", default=2.0, type=float, help="Seconds between panel reads (default: 2)")
@click.option("--timeout", default=60.0, type=float, help="Seconds to wait for zero pending (default: 60)")
@click.option("--headed", is_flag=True, help="Show the browser window")
@click.pass_obj
def check_migrations(
    config: ProbeConfig,
    apply_pending: bool,
    interval: float,
    timeout: float,
    headed: bool,
) -> None:
    """Read the migrations panel and wait until nothing is pending."""
    if headed:
        config = config.model_copy(update={"headless": False})
    console.print(config_panel(config))
    raise SystemExit(
        run_check_migrations(config, apply=apply_pending, interval=interval, timeout=timeout)
    )


@cli.command("watch-events")
@click.argument("task_id")
@click.option("--duration", default=60.0, type=float, help="Seconds to watch (default: 60)")
@click.option("--interval", default=2.0, type=float, help="Seconds between polls (default: 2)")
@click.pass_obj
def watch_events(config: ProbeConfig, task_id: str, duration: float, interval: float) -> None:
    """Print a task's context events as they appear."""
    raise SystemExit(
        run_watch_task_events(config, task_id, duration=duration, interval=interval, console=console)
    )


if __name__ == "__main__":
    cli()
