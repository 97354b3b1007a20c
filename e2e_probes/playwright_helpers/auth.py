"""
Authenticated session replay for Playwright probes.

A session snapshot is a Playwright storage-state file (cookies plus
localStorage per origin) captured once after a manual sign-in. Replaying it
into a new browser context skips the interactive login. The helpers here
load that file, locate the Supabase bearer token inside it, and decode the
token payload so probes can log who they are running as.
"""

from __future__ import annotations

import base64
import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urlparse

from playwright.sync_api import sync_playwright
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..probe_modules.config import ProbeConfig
from ..probe_modules.poller import PollResult, poll_until
from .driver import PlaywrightPageDriver

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1920, "height": 1080}
AUTH_TOKEN_MARKER = "auth-token"
SUPABASE_BASE64_PREFIX = "base64-"


class SessionSnapshotError(Exception):
    """Raised when the session snapshot is missing or cannot be parsed."""
    pass


class StoredCookie(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: float = -1
    http_only: bool = Field(False, alias="httpOnly")
    secure: bool = False
    same_site: Optional[str] = Field(None, alias="sameSite")


class StorageItem(BaseModel):
    name: str
    value: str


class OriginState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    origin: str
    local_storage: List[StorageItem] = Field(default_factory=list, alias="localStorage")


class SessionSnapshot(BaseModel):
    """Playwright storage state as written by ``BrowserContext.storage_state``."""

    cookies: List[StoredCookie] = Field(default_factory=list)
    origins: List[OriginState] = Field(default_factory=list)


class SessionIdentity(BaseModel):
    user_id: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[datetime] = None


class SnapshotValidity(BaseModel):
    valid: bool
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    minutes_left: Optional[int] = None


def load_session_snapshot(path: Path) -> SessionSnapshot:
    """
    Read a storage-state file.

    Raises:
        SessionSnapshotError: If the file is missing, not JSON, or not storage state
    """
    if not path.is_file():
        raise SessionSnapshotError(f"No session snapshot at {path}; run capture-auth first")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return SessionSnapshot.model_validate(raw)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise SessionSnapshotError(f"Cannot parse session snapshot {path}: {exc}") from exc


def supabase_cookie_name(supabase_url: str) -> str:
    """
    Derive the Supabase auth cookie name from the project URL.

    Returns:
        sb-localhost-auth-token for local URLs, else sb-{project-ref}-auth-token

    Raises:
        ValueError: If the project ref cannot be extracted
    """
    if "localhost" in supabase_url or "127.0.0.1" in supabase_url:
        return "sb-localhost-auth-token"

    # Cloud URLs look like https://abcdef.supabase.co
    hostname = urlparse(supabase_url).hostname or ""
    if "." in hostname:
        project_ref = hostname.split(".")[0]
        return f"sb-{project_ref}-auth-token"

    raise ValueError(f"Cannot extract project ref from Supabase URL: {supabase_url}")


def decode_jwt_payload(token: str) -> Dict[str, Any]:
    """
    Decode the payload segment of a JWT without verifying its signature.

    Raises:
        ValueError: If the token does not have a decodable JSON payload
    """
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        raise ValueError("Token is not a JWT (expected header.payload.signature)")

    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError(f"Token payload is not base64-encoded JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ValueError("Token payload is not a JSON object")
    return payload


def _as_epoch(value: Any) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric token expiry: {value!r}")
        return None


def _epoch_to_datetime(value: Any) -> Optional[datetime]:
    seconds = _as_epoch(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        logger.warning(f"Ignoring out-of-range token expiry {value!r}: {exc}")
        return None


def _parse_token_value(value: str) -> Tuple[Optional[str], Optional[float]]:
    """Extract (access_token, expires_at) from a stored auth value.

    Supabase has stored sessions as a bare JWT, a JSON object, a JSON array
    whose first element is the token, and ``base64-``-prefixed JSON.
    """
    text = value.strip()
    if text.startswith(SUPABASE_BASE64_PREFIX):
        encoded = text[len(SUPABASE_BASE64_PREFIX):]
        try:
            text = base64.b64decode(encoded + "=" * (-len(encoded) % 4)).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return None, None

    if text.startswith("eyJ"):
        return text, None

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None, None

    if isinstance(data, dict):
        return data.get("access_token"), _as_epoch(data.get("expires_at"))
    if isinstance(data, list) and data and isinstance(data[0], str):
        return data[0], None
    return None, None


def find_access_token(
    snapshot: SessionSnapshot, supabase_url: Optional[str] = None
) -> Tuple[Optional[str], Optional[float]]:
    """
    Return (access_token, expires_at) stored in the snapshot.

    Auth cookies are searched before localStorage. When ``supabase_url`` is
    given, entries named after that project's cookie are tried first.
    """
    candidates: List[Tuple[str, str]] = [
        (cookie.name, cookie.value)
        for cookie in snapshot.cookies
        if cookie.name.startswith("sb-") and AUTH_TOKEN_MARKER in cookie.name
    ]
    candidates += [
        (item.name, item.value)
        for origin in snapshot.origins
        for item in origin.local_storage
        if AUTH_TOKEN_MARKER in item.name
    ]

    if supabase_url:
        try:
            preferred = supabase_cookie_name(supabase_url)
        except ValueError as exc:
            logger.debug(f"Ignoring Supabase URL for token lookup: {exc}")
        else:
            candidates.sort(key=lambda candidate: candidate[0] != preferred)

    for _name, value in candidates:
        token, expires_at = _parse_token_value(value)
        if token:
            return token, expires_at

    return None, None


def session_identity(snapshot: SessionSnapshot, supabase_url: Optional[str] = None) -> SessionIdentity:
    """Best-effort user id/email/expiry for logging; unknown fields stay None."""
    token, expires_at = find_access_token(snapshot, supabase_url)
    if not token:
        return SessionIdentity()

    try:
        payload = decode_jwt_payload(token)
    except ValueError as exc:
        logger.warning(f"Could not parse auth token: {exc}")
        payload = {}

    expiry = expires_at or payload.get("exp")
    return SessionIdentity(
        user_id=payload.get("sub"),
        email=payload.get("email"),
        expires_at=_epoch_to_datetime(expiry),
    )


def check_snapshot_validity(
    path: Path, now: Optional[datetime] = None, supabase_url: Optional[str] = None
) -> SnapshotValidity:
    """Report whether the snapshot exists, carries a token, and is unexpired."""
    try:
        snapshot = load_session_snapshot(path)
    except SessionSnapshotError as exc:
        return SnapshotValidity(valid=False, reason=str(exc))

    token, _ = find_access_token(snapshot, supabase_url)
    if not token:
        return SnapshotValidity(valid=False, reason="No auth token found in snapshot")

    identity = session_identity(snapshot, supabase_url)
    if identity.expires_at is None:
        return SnapshotValidity(valid=True, reason="Token has no expiry")

    current = now or datetime.now(timezone.utc)
    seconds_left = (identity.expires_at - current).total_seconds()
    if seconds_left <= 0:
        return SnapshotValidity(valid=False, reason="Token expired", expires_at=identity.expires_at)

    return SnapshotValidity(
        valid=True,
        expires_at=identity.expires_at,
        minutes_left=int(seconds_left // 60),
    )


@contextmanager
def open_browser_session(
    config: ProbeConfig,
    run_logger: Optional[logging.Logger] = None,
    require_auth: bool = False,
) -> Iterator[PlaywrightPageDriver]:
    """
    Launch Chromium and yield a driver on a fresh page.

    The session snapshot is replayed when present. Without one the session
    runs unauthenticated with a warning, unless ``require_auth`` is set.

    Raises:
        SessionSnapshotError: If ``require_auth`` and the snapshot is missing
    """
    log = run_logger or logger
    storage_state: Optional[str] = None
    if config.auth_state_path.is_file():
        storage_state = str(config.auth_state_path)
        identity = session_identity(load_session_snapshot(config.auth_state_path), config.supabase_url)
        log.info(f"Replaying session for {identity.email or 'unknown user'} ({identity.user_id or 'no id'})")
    elif require_auth:
        raise SessionSnapshotError(f"No session snapshot at {config.auth_state_path}; run capture-auth first")
    else:
        log.warning(f"No session snapshot at {config.auth_state_path}; running unauthenticated")

    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(headless=config.headless)
        try:
            context = browser.new_context(storage_state=storage_state, viewport=VIEWPORT)
            yield PlaywrightPageDriver(context.new_page(), log)
        finally:
            browser.close()


def capture_session(
    config: ProbeConfig,
    wait_timeout: float = 300.0,
    run_logger: Optional[logging.Logger] = None,
) -> PollResult[str]:
    """
    Open a headed browser, wait for a manual sign-in, and save the storage state.

    Sign-in is detected by an ``auth-token`` key appearing in localStorage.
    The snapshot is written only when that happens within ``wait_timeout``.
    """
    log = run_logger or logger

    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(headless=False)
        try:
            context = browser.new_context(viewport=VIEWPORT)
            driver = PlaywrightPageDriver(context.new_page(), log)
            driver.goto(config.app_url)
            log.info(f"Sign in to {config.app_url} in the browser window")

            result: PollResult[str] = poll_until(
                driver.local_storage_keys,
                match=lambda key: AUTH_TOKEN_MARKER in key,
                interval=1.0,
                timeout=wait_timeout,
                description="an auth token in localStorage",
                logger=log,
            )

            if result.satisfied:
                config.auth_state_path.parent.mkdir(parents=True, exist_ok=True)
                context.storage_state(path=str(config.auth_state_path))
                log.info(f"Saved session snapshot to {config.auth_state_path}")
            return result
        finally:
            browser.close()


__all__ = [
    "SessionIdentity",
    "SessionSnapshot",
    "SessionSnapshotError",
    "SnapshotValidity",
    "capture_session",
    "check_snapshot_validity",
    "decode_jwt_payload",
    "find_access_token",
    "load_session_snapshot",
    "open_browser_session",
    "session_identity",
    "supabase_cookie_name",
]
