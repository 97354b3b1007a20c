"""Migrations probe: read the dev toolkit's migration panel and wait for zero pending.

The panel lists one ``migration-row`` element per migration file, carrying
``data-name`` and ``data-status`` attributes. With ``--apply`` the probe
clicks ``apply-migrations-button`` first, then polls the rows until none is
pending. The run passes only when every row reads as applied.

Usage:
    python -m e2e_probes.probe_phases.check_migrations --apply --timeout 60
"""

from __future__ import annotations

import argparse
import sys
from typing import Callable, ContextManager, List, Optional

from ..playwright_helpers.auth import open_browser_session
from ..playwright_helpers.driver import PageDriver
from ..probe_modules.config import ProbeConfig
from ..probe_modules.data_types import MigrationRecord, pending_migrations
from ..probe_modules.exit_codes import (
    EXIT_BLOCKER_INVALID_ARGS,
    EXIT_SUCCESS,
    EXIT_VALIDATION_CONDITION_TIMEOUT,
)
from ..probe_modules.poller import poll_until
from ..probe_modules.predicates import all_applied
from ..probe_modules.utils import load_probe_env
from ..probe_modules.workflow_ops import ProbeContext, capture, finish_probe, record_failure, start_probe

PROBE_NAME = "check-migrations"
TOOLKIT_PATH = "/dev-toolkit-standalone"
APPLIED_STATUSES = frozenset({"applied", "complete", "completed", "success"})

SessionFactory = Callable[..., ContextManager[PageDriver]]


def read_migrations(driver: PageDriver) -> List[MigrationRecord]:
    """Return the migration rows currently rendered in the panel."""
    rows = driver.attributes_of_all("migration-row", "data-name", "data-status")
    return [
        MigrationRecord(
            name=row.get("data-name") or f"migration-{index}",
            applied=(row.get("data-status") or "").strip().lower() in APPLIED_STATUSES,
        )
        for index, row in enumerate(rows, start=1)
    ]


def _open_panel(ctx: ProbeContext, driver: PageDriver) -> bool:
    driver.goto(f"{ctx.config.app_url}{TOOLKIT_PATH}")
    capture(ctx, driver, "toolkit-loaded")

    if driver.is_present("migrations-tab"):
        driver.click("migrations-tab")
    else:
        ctx.logger.warning("No migrations tab; assuming the panel is already open")
        ctx.report.note("migrations-tab not found", level="warning")

    visible = driver.wait_for_visible("migration-row")
    capture(ctx, driver, "migrations-panel")
    return ctx.report.check("Migrations panel rendered", visible)


def run_check_migrations(
    config: ProbeConfig,
    *,
    apply: bool = False,
    interval: float = 2.0,
    timeout: float = 60.0,
    session_factory: SessionFactory = open_browser_session,
) -> int:
    """Run the probe and return its exit code."""
    ctx = start_probe(PROBE_NAME, config, "No migrations left pending")
    report = ctx.report

    if interval <= 0 or timeout < 0:
        ctx.logger.error(f"Invalid arguments: interval={interval} timeout={timeout}")
        report.check("Arguments valid", False, f"interval={interval} timeout={timeout}")
        return finish_probe(ctx, EXIT_BLOCKER_INVALID_ARGS)

    try:
        with session_factory(config, ctx.logger, require_auth=True) as driver:
            try:
                if not _open_panel(ctx, driver):
                    return finish_probe(ctx, EXIT_VALIDATION_CONDITION_TIMEOUT)

                before = read_migrations(driver)
                pending_before = pending_migrations(before)
                ctx.logger.info(f"{len(before)} migration(s), {len(pending_before)} pending")
                report.detail("pending_before", [record.name for record in pending_before])

                if apply and pending_before:
                    driver.click("apply-migrations-button")
                    capture(ctx, driver, "apply-clicked")

                result = poll_until(
                    lambda: read_migrations(driver),
                    all_applied,
                    interval=interval,
                    timeout=timeout,
                    key=lambda record: (record.name, record.applied),
                    description="zero pending migrations",
                    logger=ctx.logger,
                )
                capture(ctx, driver, "final-state")
            except Exception:
                capture(ctx, driver, "error-state")
                raise
    except Exception as exc:  # noqa: BLE001 - any failure ends the run with a mapped exit code
        return finish_probe(ctx, record_failure(ctx, exc))

    pending_after = pending_migrations(result.collection)
    report.detail("pending_after", [record.name for record in pending_after])
    report.detail("total_migrations", len(result.collection))
    report.check(
        "Zero pending migrations",
        result.satisfied,
        f"{len(pending_after)} pending of {len(result.collection)}",
    )

    if not result.satisfied:
        return finish_probe(ctx, EXIT_VALIDATION_CONDITION_TIMEOUT)
    return finish_probe(ctx, EXIT_SUCCESS)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check that no migrations are left pending")
    parser.add_argument("--apply", action="store_true", help="Click Apply before waiting")
    parser.add_argument("--interval", type=float, default=2.0, help="Seconds between panel reads")
    parser.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait for zero pending")
    args = parser.parse_args(argv)

    load_probe_env()
    return run_check_migrations(
        ProbeConfig.from_env(),
        apply=args.apply,
        interval=args.interval,
        timeout=args.timeout,
    )


if __name__ == "__main__":
    sys.exit(main())
