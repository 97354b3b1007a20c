"""Capture a session snapshot after a manual sign-in.

Opens a headed browser on the app, waits for the user to sign in, and saves
the storage state to ``AUTH_STATE_PATH`` so other probes can replay it.

Usage:
    python -m e2e_probes.probe_phases.capture_auth --wait 300
"""

from __future__ import annotations

import argparse
import sys
from typing import Callable, List, Optional

from ..playwright_helpers.auth import capture_session, check_snapshot_validity
from ..probe_modules.config import ProbeConfig
from ..probe_modules.exit_codes import EXIT_BLOCKER_MISSING_AUTH, EXIT_SUCCESS
from ..probe_modules.poller import PollResult
from ..probe_modules.utils import load_probe_env
from ..probe_modules.workflow_ops import finish_probe, record_failure, start_probe

PROBE_NAME = "capture-auth"

CaptureFn = Callable[..., PollResult[str]]


def run_capture_auth(
    config: ProbeConfig,
    *,
    wait_timeout: float = 300.0,
    capture: CaptureFn = capture_session,
) -> int:
    """Run the capture and return its exit code."""
    ctx = start_probe(PROBE_NAME, config, "Save an authenticated session snapshot")

    try:
        result = capture(config, wait_timeout=wait_timeout, run_logger=ctx.logger)
    except Exception as exc:  # noqa: BLE001 - any failure ends the run with a mapped exit code
        return finish_probe(ctx, record_failure(ctx, exc))

    if not ctx.report.check("Sign-in detected", result.satisfied, f"after {result.elapsed_seconds:.0f}s"):
        ctx.logger.error(f"No sign-in within {wait_timeout:.0f}s; snapshot not saved")
        return finish_probe(ctx, EXIT_BLOCKER_MISSING_AUTH)

    validity = check_snapshot_validity(config.auth_state_path, supabase_url=config.supabase_url)
    detail = validity.reason or f"{validity.minutes_left} minute(s) left"
    ctx.report.detail("auth_state_path", str(config.auth_state_path))
    if not ctx.report.check("Snapshot valid", validity.valid, detail):
        return finish_probe(ctx, EXIT_BLOCKER_MISSING_AUTH)
    return finish_probe(ctx, EXIT_SUCCESS)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Capture an authenticated session snapshot")
    parser.add_argument("--wait", type=float, default=300.0, help="Seconds to wait for sign-in")
    args = parser.parse_args(argv)

    load_probe_env()
    return run_capture_auth(ProbeConfig.from_env(), wait_timeout=args.wait)


if __name__ == "__main__":
    sys.exit(main())
