"""Watch a task's context events for a fixed window and print each new one.

The poll never succeeds; running to the timeout is the normal end of a watch.

Usage:
    python -m e2e_probes.probe_phases.watch_task_events 42 --duration 120
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from rich.console import Console

from ..probe_modules.config import ProbeConfig
from ..probe_modules.data_types import RecordId, TaskContextEvent, group_events_by_actor
from ..probe_modules.datastore import DatastoreClient
from ..probe_modules.exit_codes import EXIT_BLOCKER_INVALID_ARGS, EXIT_BLOCKER_MISSING_ENV, EXIT_SUCCESS
from ..probe_modules.poller import poll_until
from ..probe_modules.predicates import never
from ..probe_modules.utils import load_probe_env
from ..probe_modules.workflow_ops import finish_probe, record_failure, start_probe

PROBE_NAME = "watch-events"


def print_events(console: Console, events: List[TaskContextEvent]) -> None:
    for event in events:
        stamp = event.created_at.strftime("%H:%M:%S") if event.created_at else "--:--:--"
        actor = event.actor_id or "system"
        console.print(f"[dim]{stamp}[/dim] [cyan]{actor}[/cyan] {event.operation}")
        if event.reasoning:
            console.print(f"         [dim]{event.reasoning}[/dim]")


def run_watch_task_events(
    config: ProbeConfig,
    task_id: RecordId,
    *,
    duration: float = 60.0,
    interval: float = 2.0,
    datastore: Optional[DatastoreClient] = None,
    console: Optional[Console] = None,
) -> int:
    """Watch the task's events for ``duration`` seconds and return the exit code."""
    ctx = start_probe(PROBE_NAME, config, f"Events for task {task_id}")
    console = console or Console()

    if interval <= 0 or duration < 0:
        ctx.logger.error(f"Invalid arguments: interval={interval} duration={duration}")
        ctx.report.check("Arguments valid", False, f"interval={interval} duration={duration}")
        return finish_probe(ctx, EXIT_BLOCKER_INVALID_ARGS, console)

    missing = config.missing("supabase_url", "service_role_key")
    if missing:
        ctx.logger.error(f"Missing environment variables: {', '.join(missing)}")
        ctx.report.check("Environment configured", False, ", ".join(missing))
        return finish_probe(ctx, EXIT_BLOCKER_MISSING_ENV, console)

    datastore = datastore or DatastoreClient(config.supabase_url or "", config.service_role_key or "")
    console.print(f"Watching task [bold]{task_id}[/bold] for {duration:.0f}s (Ctrl+C to stop)")

    try:
        with datastore:
            result = poll_until(
                lambda: datastore.list_task_events(task_id),
                never,
                interval=interval,
                timeout=duration,
                on_new_records=lambda events: print_events(console, events),
                description=f"events on task {task_id}",
                logger=ctx.logger,
            )
    except KeyboardInterrupt:
        ctx.report.note("Watch interrupted", level="warning")
        return finish_probe(ctx, EXIT_SUCCESS, console)
    except Exception as exc:  # noqa: BLE001 - any failure ends the run with a mapped exit code
        return finish_probe(ctx, record_failure(ctx, exc), console)

    ctx.report.detail("task_id", task_id)
    ctx.report.detail("total_events", len(result.collection))
    ctx.report.detail("events_by_actor", group_events_by_actor(result.collection))
    ctx.report.check(
        "Events readable",
        result.fetch_errors < result.iterations,
        f"{result.iterations} fetches, {result.fetch_errors} failed",
    )
    return finish_probe(ctx, console=console)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Print a task's context events as they appear")
    parser.add_argument("task_id", help="Task to watch")
    parser.add_argument("--duration", type=float, default=60.0, help="Seconds to watch")
    parser.add_argument("--interval", type=float, default=2.0, help="Seconds between polls")
    args = parser.parse_args(argv)

    load_probe_env()
    return run_watch_task_events(
        ProbeConfig.from_env(),
        args.task_id,
        duration=args.duration,
        interval=args.interval,
    )


if __name__ == "__main__":
    sys.exit(main())
