"""
Playwright helpers for probe sessions.

Main exports:
- open_browser_session: Launch Chromium with the saved session snapshot replayed
- capture_session: Save a new snapshot after a manual sign-in
- PageDriver / PlaywrightPageDriver: test-id based page automation
"""

from .auth import (
    SessionSnapshotError,
    capture_session,
    check_snapshot_validity,
    open_browser_session,
    session_identity,
)
from .driver import ElementNotFoundError, PageDriver, PlaywrightPageDriver

__all__ = [
    "ElementNotFoundError",
    "PageDriver",
    "PlaywrightPageDriver",
    "SessionSnapshotError",
    "capture_session",
    "check_snapshot_validity",
    "open_browser_session",
    "session_identity",
]
