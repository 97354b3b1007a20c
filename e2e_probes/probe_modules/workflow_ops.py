"""Shared plumbing for probe runs: run setup, screenshots, exit-code mapping, wrap-up."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from rich.console import Console

from ..playwright_helpers.auth import SessionSnapshotError
from ..playwright_helpers.driver import ElementNotFoundError, PageDriver
from .backend_api import BackendAuthError, BackendUnavailableError
from .config import ProbeConfig
from .datastore import DatastoreError
from .exit_codes import (
    EXIT_BLOCKER_MISSING_AUTH,
    EXIT_EXEC_BROWSER_ERROR,
    EXIT_EXEC_UNEXPECTED_ERROR,
    EXIT_RESOURCE_FILE_ERROR,
    EXIT_RESOURCE_NETWORK_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_CHECK_FAILED,
    exit_category,
    get_exit_code_description,
)
from .report import ProbeReport, ReportBuilder, render_summary, write_report
from .utils import close_logger, make_run_id, run_output_dir, setup_logger


@dataclass
class ProbeContext:
    """Everything one probe run threads through its steps."""

    name: str
    run_id: str
    run_dir: Path
    config: ProbeConfig
    logger: logging.Logger
    report: ReportBuilder


def start_probe(name: str, config: ProbeConfig, description: str = "") -> ProbeContext:
    run_id = make_run_id()
    run_dir = run_output_dir(config.output_root, name, run_id)
    logger = setup_logger(run_id, run_dir)
    logger.info(f"{name}: {description}" if description else name)
    logger.info(f"Output: {run_dir}")
    logger.debug(f"Environment: {config.environment}")

    report = ReportBuilder(name, run_id, run_dir, description)
    report.detail("environment", config.environment)
    return ProbeContext(
        name=name,
        run_id=run_id,
        run_dir=run_dir,
        config=config,
        logger=logger,
        report=report,
    )


def capture(ctx: ProbeContext, driver: PageDriver, name: str) -> Optional[Path]:
    """Take the next numbered screenshot; a failed capture is logged, not raised."""
    path = ctx.report.next_screenshot_path(name)
    try:
        return driver.screenshot(path)
    except PlaywrightError as exc:
        ctx.logger.warning(f"Screenshot '{name}' failed: {exc}")
        ctx.report.note(f"Screenshot '{name}' failed: {exc}", level="warning")
        return None


def exit_code_for(exc: BaseException) -> int:
    """Map an exception that ended a probe to an exit code."""
    if isinstance(exc, (SessionSnapshotError, BackendAuthError)):
        return EXIT_BLOCKER_MISSING_AUTH
    if isinstance(exc, (BackendUnavailableError, DatastoreError)):
        return EXIT_RESOURCE_NETWORK_ERROR
    if isinstance(exc, (ElementNotFoundError, PlaywrightError)):
        return EXIT_EXEC_BROWSER_ERROR
    if isinstance(exc, OSError):
        return EXIT_RESOURCE_FILE_ERROR
    return EXIT_EXEC_UNEXPECTED_ERROR


def record_failure(ctx: ProbeContext, exc: BaseException) -> int:
    """Log the exception that aborted the run, note it in the report, and return its exit code."""
    code = exit_code_for(exc)
    ctx.logger.error(f"Probe aborted: {type(exc).__name__}: {exc}")
    ctx.logger.debug("Traceback:", exc_info=exc)
    ctx.report.check("Probe completed without errors", False, f"{type(exc).__name__}: {exc}")
    return code


def finish_probe(
    ctx: ProbeContext,
    exit_code: Optional[int] = None,
    console: Optional[Console] = None,
) -> int:
    """Finalize and write the report, print the summary, and settle on the exit code.

    Without an explicit ``exit_code`` the run succeeds only if every check
    passed. The run logger is closed on return.
    """
    if exit_code is None:
        exit_code = EXIT_SUCCESS if ctx.report.checks and not ctx.report.failed else EXIT_VALIDATION_CHECK_FAILED
    category = exit_category(exit_code)
    ctx.report.detail("exit_code", exit_code)
    ctx.report.detail("exit_category", category)

    report: ProbeReport = ctx.report.finalize()
    report_path = write_report(report, ctx.run_dir)
    render_summary(report, console)

    ctx.logger.info(f"Report: {report_path}")
    message = f"Exit {exit_code}: {get_exit_code_description(exit_code)}"
    if category == "success":
        ctx.logger.info(message)
    elif category == "validation":
        ctx.logger.warning(message)
    else:
        ctx.logger.error(message)
    if category == "blocker":
        ctx.logger.info("Run `e2e-probes health` to see which prerequisite is missing")

    close_logger(ctx.logger)
    return exit_code


__all__ = [
    "ProbeContext",
    "capture",
    "exit_code_for",
    "finish_probe",
    "record_failure",
    "start_probe",
]
