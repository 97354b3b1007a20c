"""Preflight checks for the probe harness: environment, services, auth snapshot, browser."""

from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from .playwright_helpers.auth import check_snapshot_validity
from .probe_modules.backend_api import BackendClient
from .probe_modules.config import ProbeConfig
from .probe_modules.datastore import DatastoreClient
from .probe_modules.utils import load_probe_env

DEFAULT_CHECKS = ["env", "backend", "datastore", "auth", "browser"]


class CheckResult(BaseModel):
    success: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    details: Dict[str, Any] = {}


class HealthCheckResult(BaseModel):
    success: bool
    timestamp: str
    checks: Dict[str, CheckResult]
    warnings: List[str] = []
    errors: List[str] = []


def check_env_vars(config: ProbeConfig) -> CheckResult:
    required = {
        "SUPABASE_URL": "Supabase project URL for datastore reads",
        "SUPABASE_SERVICE_ROLE_KEY": "Service-role key for datastore reads",
    }
    optional = {
        "APP_URL": f"Frontend URL (defaults to {config.app_url})",
        "BACKEND_URL": f"Backend URL (defaults to {config.backend_url})",
        "AUTH_STATE_PATH": f"Session snapshot path (defaults to {config.auth_state_path})",
    }

    missing_required = [f"{key} ({desc})" for key, desc in required.items() if not os.getenv(key)]
    missing_optional = [f"{key} ({desc})" for key, desc in optional.items() if not os.getenv(key)]

    return CheckResult(
        success=not missing_required,
        error="Missing required environment variables" if missing_required else None,
        details={
            "missing_required": missing_required,
            "missing_optional": missing_optional,
            "headless": config.headless,
        },
    )


def check_backend(config: ProbeConfig) -> CheckResult:
    with BackendClient(config.backend_url, timeout=5.0) as backend:
        healthy = backend.health()
    return CheckResult(
        success=healthy,
        error=None if healthy else f"Backend not responding at {config.backend_url}",
        details={"backend_url": config.backend_url},
    )


def check_datastore(config: ProbeConfig) -> CheckResult:
    missing = config.missing("supabase_url", "service_role_key")
    if missing:
        return CheckResult(
            success=False,
            error=f"Datastore not configured: {', '.join(missing)}",
            details={"configured": False},
        )

    with DatastoreClient(config.supabase_url or "", config.service_role_key or "", timeout=5.0) as datastore:
        reachable = datastore.ping()
    return CheckResult(
        success=reachable,
        error=None if reachable else "PostgREST query failed with the service-role key",
        details={"configured": True, "rest_url": datastore.rest_url},
    )


def check_auth_snapshot(config: ProbeConfig) -> CheckResult:
    validity = check_snapshot_validity(config.auth_state_path, supabase_url=config.supabase_url)
    details: Dict[str, Any] = {"path": str(config.auth_state_path)}
    if validity.expires_at:
        details["expires_at"] = validity.expires_at.isoformat()
    if validity.minutes_left is not None:
        details["minutes_left"] = validity.minutes_left

    warning = None
    if validity.valid and validity.minutes_left is not None and validity.minutes_left < 10:
        warning = f"Session expires in {validity.minutes_left} minute(s)"

    return CheckResult(
        success=validity.valid,
        error=None if validity.valid else validity.reason,
        warning=warning,
        details=details,
    )


def check_browser(_config: ProbeConfig) -> CheckResult:
    try:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright
    except ImportError as exc:
        return CheckResult(success=False, error=f"Playwright not installed: {exc}")

    try:
        with sync_playwright() as playwright:
            executable = playwright.chromium.executable_path
    except PlaywrightError as exc:
        return CheckResult(success=False, error=f"Playwright driver failed to start: {exc}")

    installed = Path(executable).exists()
    return CheckResult(
        success=installed,
        error=None if installed else "Chromium missing; run `playwright install chromium`",
        details={"executable": executable},
    )


CHECK_REGISTRY: Dict[str, Callable[[ProbeConfig], CheckResult]] = {
    "env": check_env_vars,
    "backend": check_backend,
    "datastore": check_datastore,
    "auth": check_auth_snapshot,
    "browser": check_browser,
}


def run_checks(selected: List[str], config: ProbeConfig) -> Dict[str, CheckResult]:
    results: Dict[str, CheckResult] = {}
    for name in selected:
        checker = CHECK_REGISTRY.get(name)
        if not checker:
            raise ValueError(f"Unknown check: {name}")
        results[name] = checker(config)
    return results


def build_health_report(selected: List[str], config: ProbeConfig) -> HealthCheckResult:
    results = run_checks(selected, config)
    errors = [name for name, result in results.items() if not result.success]
    warnings = [result.warning for result in results.values() if result.warning]

    return HealthCheckResult(
        success=not errors,
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks=results,
        warnings=[w for w in warnings if w],
        errors=errors,
    )


def format_health_report(payload: HealthCheckResult) -> str:
    overall = "OK" if payload.success else "FAIL"
    lines = [f"Overall status: {overall} ({payload.timestamp})"]
    for name, result in payload.checks.items():
        status = "OK" if result.success else "FAIL"
        lines.append(f"[{status}] {name}")
        if result.error:
            lines.append(f"  - error: {result.error}")
        if result.warning:
            lines.append(f"  - warning: {result.warning}")
        for key, value in result.details.items():
            lines.append(f"  - {key}: {value}")
    return "\n".join(lines)


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run probe harness health checks")
    parser.add_argument(
        "checks",
        nargs="*",
        choices=DEFAULT_CHECKS + ["all"],
        help="Checks to execute",
    )
    parser.add_argument("--json", action="store_true", help="Emit JSON output")
    args = parser.parse_args(argv)

    load_probe_env()
    targets = DEFAULT_CHECKS if not args.checks or "all" in args.checks else args.checks
    payload = build_health_report(targets, ProbeConfig.from_env())

    if args.json:
        sys.stdout.write(f"{payload.model_dump_json(indent=2)}\n")
    else:
        sys.stdout.write(f"{format_health_report(payload)}\n")

    return 0 if payload.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
