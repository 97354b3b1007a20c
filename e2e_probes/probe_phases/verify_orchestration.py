"""Orchestration probe: create a task and wait for the orchestrator to act on it.

Steps:
1. Check the backend health endpoint
2. Create a task through the backend API (using the snapshot's bearer token)
   or through the UI's task form
3. Poll ``task_context_events`` for the task until an orchestration event
   appears or the timeout elapses
4. Report the events grouped by actor

Usage:
    python -m e2e_probes.probe_phases.verify_orchestration --via api --timeout 30
"""

from __future__ import annotations

import argparse
import sys
import time
from typing import Callable, ContextManager, List, Optional

from ..playwright_helpers.auth import (
    SessionSnapshotError,
    find_access_token,
    load_session_snapshot,
    open_browser_session,
    session_identity,
)
from ..playwright_helpers.driver import PageDriver
from ..probe_modules.backend_api import BackendClient
from ..probe_modules.config import ProbeConfig
from ..probe_modules.data_types import RecordId, Task, TaskContextEvent, group_events_by_actor
from ..probe_modules.datastore import DatastoreClient
from ..probe_modules.exit_codes import (
    EXIT_BLOCKER_BACKEND_UNAVAILABLE,
    EXIT_BLOCKER_INVALID_ARGS,
    EXIT_BLOCKER_MISSING_AUTH,
    EXIT_BLOCKER_MISSING_ENV,
    EXIT_SUCCESS,
    EXIT_VALIDATION_CONDITION_TIMEOUT,
)
from ..probe_modules.poller import poll_until
from ..probe_modules.predicates import is_orchestration_event
from ..probe_modules.utils import load_probe_env
from ..probe_modules.workflow_ops import ProbeContext, capture, finish_probe, record_failure, start_probe

PROBE_NAME = "verify-orchestration"
TASK_FORM_PATH = "/dev-toolkit-standalone"
TASK_SOURCES = ("api", "ui")

SessionFactory = Callable[..., ContextManager[PageDriver]]


def _log_new_events(ctx: ProbeContext) -> Callable[[List[TaskContextEvent]], None]:
    def log_events(events: List[TaskContextEvent]) -> None:
        for event in events:
            ctx.logger.info(f"   • {event.operation} by {event.actor_id or 'system'}")
            if event.reasoning:
                ctx.logger.debug(f"     Reasoning: {event.reasoning}")

    return log_events


def create_task_via_ui(
    ctx: ProbeContext,
    title: str,
    datastore: DatastoreClient,
    session_factory: SessionFactory,
    user_id: Optional[str],
    timeout: float,
) -> Optional[RecordId]:
    """Submit the task form and find the created row by title."""
    with session_factory(ctx.config, ctx.logger, require_auth=True) as driver:
        try:
            driver.goto(f"{ctx.config.app_url}{TASK_FORM_PATH}")
            if not driver.wait_for_visible("create-task-button"):
                ctx.report.check("Task form available", False, "create-task-button not visible")
                capture(ctx, driver, "task-form-missing")
                return None

            driver.click("create-task-button")
            driver.fill("task-title-input", title)
            capture(ctx, driver, "task-form-filled")
            driver.click("task-submit-button")
            capture(ctx, driver, "task-submitted")
        except Exception:
            capture(ctx, driver, "error-state")
            raise

    found = poll_until(
        lambda: datastore.list_tasks(user_id=user_id, limit=20),
        match=lambda task: task.title == title,
        interval=1.0,
        timeout=timeout,
        description=f"task '{title}' in the datastore",
        logger=ctx.logger,
    )
    if not found.satisfied:
        return None
    task: Task = found.matching_records[0]
    return task.id


def run_verify_orchestration(
    config: ProbeConfig,
    *,
    via: str = "api",
    title: Optional[str] = None,
    interval: float = 1.0,
    timeout: float = 30.0,
    backend: Optional[BackendClient] = None,
    datastore: Optional[DatastoreClient] = None,
    session_factory: SessionFactory = open_browser_session,
) -> int:
    """Run the probe and return its exit code."""
    ctx = start_probe(PROBE_NAME, config, "Task creation triggers orchestration events")
    report = ctx.report

    if via not in TASK_SOURCES or interval <= 0 or timeout < 0:
        ctx.logger.error(f"Invalid arguments: via={via!r} interval={interval} timeout={timeout}")
        report.check("Arguments valid", False, f"via={via} interval={interval} timeout={timeout}")
        return finish_probe(ctx, EXIT_BLOCKER_INVALID_ARGS)

    missing = config.missing("supabase_url", "service_role_key")
    if missing:
        ctx.logger.error(f"Missing environment variables: {', '.join(missing)}")
        report.check("Environment configured", False, ", ".join(missing))
        return finish_probe(ctx, EXIT_BLOCKER_MISSING_ENV)

    try:
        snapshot = load_session_snapshot(config.auth_state_path)
    except SessionSnapshotError as exc:
        ctx.logger.error(str(exc))
        report.check("Session snapshot loaded", False, str(exc))
        return finish_probe(ctx, EXIT_BLOCKER_MISSING_AUTH)

    token, _ = find_access_token(snapshot, config.supabase_url)
    identity = session_identity(snapshot, config.supabase_url)
    ctx.logger.info(f"User ID: {identity.user_id or 'Unknown'}")
    ctx.logger.info(f"Email: {identity.email or 'Unknown'}")

    backend = backend or BackendClient(config.backend_url, token=token)
    datastore = datastore or DatastoreClient(config.supabase_url or "", config.service_role_key or "")
    title = title or f"Orchestration probe {int(time.time())}"

    try:
        with backend, datastore:
            if not report.check("Backend healthy", backend.health(), config.backend_url):
                ctx.logger.error(f"Backend is not responding at {config.backend_url}")
                return finish_probe(ctx, EXIT_BLOCKER_BACKEND_UNAVAILABLE)

            if via == "ui":
                task_id = create_task_via_ui(
                    ctx, title, datastore, session_factory, identity.user_id, timeout
                )
            else:
                task_id = backend.create_task(title, task_type="onboarding").id

            if not report.check("Task created", task_id is not None, f"{via}: {title}"):
                return finish_probe(ctx, EXIT_VALIDATION_CONDITION_TIMEOUT)
            report.detail("task_id", task_id)
            ctx.logger.info(f"Monitoring task {task_id} for up to {timeout:.0f}s")

            result = poll_until(
                lambda: datastore.list_task_events(task_id),
                match=is_orchestration_event,
                interval=interval,
                timeout=timeout,
                on_new_records=_log_new_events(ctx),
                description="orchestration events",
                logger=ctx.logger,
            )

            report.detail("total_events", len(result.collection))
            report.detail("events_by_actor", group_events_by_actor(result.collection))
            report.detail("elapsed_ms", result.elapsed_ms)
            report.check(
                "Orchestration events observed",
                result.satisfied,
                f"{len(result.matching_records)} matching of {len(result.collection)} "
                f"after {result.elapsed_seconds:.1f}s",
            )
    except Exception as exc:  # noqa: BLE001 - any failure ends the run with a mapped exit code
        return finish_probe(ctx, record_failure(ctx, exc))

    if not result.satisfied:
        return finish_probe(ctx, EXIT_VALIDATION_CONDITION_TIMEOUT)
    return finish_probe(ctx, EXIT_SUCCESS)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Verify that task creation triggers orchestration")
    parser.add_argument("--via", choices=list(TASK_SOURCES), default="api", help="How to create the task")
    parser.add_argument("--title", help="Task title (defaults to a timestamped title)")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between event polls")
    parser.add_argument("--timeout", type=float, default=30.0, help="Seconds to wait for events")
    args = parser.parse_args(argv)

    load_probe_env()
    return run_verify_orchestration(
        ProbeConfig.from_env(),
        via=args.via,
        title=args.title,
        interval=args.interval,
        timeout=args.timeout,
    )


if __name__ == "__main__":
    sys.exit(main())
