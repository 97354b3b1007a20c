"""Tests for shared probe plumbing and exit codes."""

from __future__ import annotations

import io
import json

import pytest
from playwright.sync_api import Error as PlaywrightError
from rich.console import Console

from conftest import FakeDriver
from e2e_probes.playwright_helpers.auth import SessionSnapshotError
from e2e_probes.playwright_helpers.driver import ElementNotFoundError
from e2e_probes.probe_modules.backend_api import BackendAuthError, BackendUnavailableError
from e2e_probes.probe_modules.datastore import DatastoreError
from e2e_probes.probe_modules.exit_codes import (
    EXIT_BLOCKER_INVALID_ARGS,
    EXIT_BLOCKER_MISSING_AUTH,
    EXIT_EXEC_BROWSER_ERROR,
    EXIT_EXEC_UNEXPECTED_ERROR,
    EXIT_RESOURCE_FILE_ERROR,
    EXIT_RESOURCE_NETWORK_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_CHECK_FAILED,
    exit_category,
    get_exit_code_description,
    is_blocker,
    is_execution_failure,
    is_resource_failure,
    is_validation_failure,
)
from e2e_probes.probe_modules.workflow_ops import (
    capture,
    exit_code_for,
    finish_probe,
    record_failure,
    start_probe,
)


@pytest.mark.parametrize(
    "exc,code",
    [
        (SessionSnapshotError("missing"), EXIT_BLOCKER_MISSING_AUTH),
        (BackendAuthError("401"), EXIT_BLOCKER_MISSING_AUTH),
        (BackendUnavailableError("down"), EXIT_RESOURCE_NETWORK_ERROR),
        (DatastoreError("HTTP 500"), EXIT_RESOURCE_NETWORK_ERROR),
        (ElementNotFoundError("migration-row"), EXIT_EXEC_BROWSER_ERROR),
        (PlaywrightError("Target closed"), EXIT_EXEC_BROWSER_ERROR),
        (PermissionError("read-only"), EXIT_RESOURCE_FILE_ERROR),
        (KeyError("oops"), EXIT_EXEC_UNEXPECTED_ERROR),
    ],
)
def test_exit_code_for(exc, code):
    assert exit_code_for(exc) == code


def test_exit_code_ranges():
    assert is_blocker(EXIT_BLOCKER_MISSING_AUTH)
    assert is_validation_failure(EXIT_VALIDATION_CHECK_FAILED)
    assert is_execution_failure(EXIT_EXEC_BROWSER_ERROR)
    assert is_resource_failure(EXIT_RESOURCE_NETWORK_ERROR)
    assert not is_blocker(EXIT_SUCCESS)
    assert get_exit_code_description(99) == "Unknown exit code: 99"


def test_start_probe_creates_run_dir(probe_config):
    ctx = start_probe("Verify Orchestration", probe_config, "desc")

    assert ctx.run_dir.parent == probe_config.output_root
    assert ctx.run_dir.name.startswith("verify-orchestration-")
    assert ctx.run_dir.name.endswith(ctx.run_id)
    assert (ctx.run_dir / "execution.log").exists()


def test_capture_tolerates_screenshot_failure(probe_config):
    class BrokenDriver(FakeDriver):
        def screenshot(self, path):
            raise PlaywrightError("page crashed")

    ctx = start_probe("probe", probe_config)

    assert capture(ctx, BrokenDriver(), "initial") is None
    assert ctx.report.notes[-1].level == "warning"


def test_finish_probe_defaults_from_checks(probe_config):
    ctx = start_probe("probe", probe_config)
    ctx.report.check("ok", True)

    assert finish_probe(ctx, console=Console(file=io.StringIO())) == EXIT_SUCCESS
    assert json.loads((ctx.run_dir / "report.json").read_text())["success"] is True


def test_finish_probe_failed_check(probe_config):
    ctx = start_probe("probe", probe_config)
    ctx.report.check("not ok", False)

    assert finish_probe(ctx, console=Console(file=io.StringIO())) == EXIT_VALIDATION_CHECK_FAILED


def test_record_failure_adds_failed_check(probe_config):
    ctx = start_probe("probe", probe_config)

    code = record_failure(ctx, BackendUnavailableError("connection refused"))

    assert code == EXIT_RESOURCE_NETWORK_ERROR
    assert ctx.report.checks[-1].passed is False
    assert "connection refused" in ctx.report.checks[-1].detail


def test_finish_probe_records_exit_category(probe_config):
    ctx = start_probe("probe", probe_config)

    finish_probe(ctx, EXIT_BLOCKER_INVALID_ARGS, console=Console(file=io.StringIO()))

    details = json.loads((ctx.run_dir / "report.json").read_text())["details"]
    assert details["exit_code"] == EXIT_BLOCKER_INVALID_ARGS
    assert details["exit_category"] == "blocker"


def test_finish_probe_closes_run_log(probe_config):
    ctx = start_probe("probe", probe_config)
    ctx.report.check("ok", True)

    finish_probe(ctx, console=Console(file=io.StringIO()))

    assert ctx.logger.handlers == []
    assert "Exit 0: Success" in (ctx.run_dir / "execution.log").read_text()


@pytest.mark.parametrize(
    "code,category",
    [
        (EXIT_SUCCESS, "success"),
        (EXIT_BLOCKER_MISSING_AUTH, "blocker"),
        (EXIT_VALIDATION_CHECK_FAILED, "validation"),
        (EXIT_EXEC_BROWSER_ERROR, "execution"),
        (EXIT_RESOURCE_NETWORK_ERROR, "resource"),
        (99, "unknown"),
    ],
)
def test_exit_category(code, category):
    assert exit_category(code) == category
