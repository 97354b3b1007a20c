"""Shared fixtures: deterministic clock, fake page driver, probe config and session snapshots."""

from __future__ import annotations

import base64
import json
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from e2e_probes.playwright_helpers.driver import ElementNotFoundError
from e2e_probes.probe_modules.config import ProbeConfig

SUPABASE_URL = "http://localhost:54321"


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    async def async_sleep(self, seconds: float) -> None:
        self.sleep(seconds)


class FakeDriver:
    """In-memory PageDriver: elements are test ids mapped to text and attribute rows."""

    def __init__(self, present: Optional[List[str]] = None) -> None:
        self.present = set(present or [])
        self.rows: Dict[str, List[Dict[str, Optional[str]]]] = {}
        self.texts: Dict[str, str] = {}
        self.visited: List[str] = []
        self.clicked: List[str] = []
        self.filled: Dict[str, str] = {}
        self.screenshots: List[Path] = []
        self.storage_keys: List[str] = []
        self.on_click: Dict[str, Any] = {}

    def goto(self, url: str) -> None:
        self.visited.append(url)

    def find_by_test_id(self, test_id: str) -> str:
        if test_id not in self.present and test_id not in self.rows:
            raise ElementNotFoundError(f"No element with data-testid='{test_id}'")
        return test_id

    def is_present(self, test_id: str) -> bool:
        return test_id in self.present or bool(self.rows.get(test_id))

    def click(self, test_id: str) -> None:
        self.find_by_test_id(test_id)
        self.clicked.append(test_id)
        callback = self.on_click.get(test_id)
        if callback is not None:
            callback(self)

    def fill(self, test_id: str, text: str) -> None:
        self.find_by_test_id(test_id)
        self.filled[test_id] = text

    def wait_for_visible(self, test_id: str, timeout_ms: int = 10_000) -> bool:
        return self.is_present(test_id)

    def text_of(self, test_id: str) -> str:
        self.find_by_test_id(test_id)
        return self.texts.get(test_id, "")

    def texts_of(self, test_id: str) -> List[str]:
        return [self.texts[test_id]] if test_id in self.texts else []

    def attributes_of_all(self, test_id: str, *names: str) -> List[Dict[str, Optional[str]]]:
        return [{name: row.get(name) for name in names} for row in self.rows.get(test_id, [])]

    def local_storage_keys(self) -> List[str]:
        return list(self.storage_keys)

    def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"")
        self.screenshots.append(path)
        return path


def fake_session_factory(driver: FakeDriver):
    """Stand-in for ``open_browser_session`` that yields ``driver``."""

    @contextmanager
    def factory(config, run_logger=None, require_auth=False):
        yield driver

    return factory


def make_jwt(payload: Dict[str, Any]) -> str:
    def encode(part: Dict[str, Any]) -> str:
        raw = json.dumps(part).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{encode({'alg': 'HS256', 'typ': 'JWT'})}.{encode(payload)}.signature"


def write_snapshot(
    path: Path,
    token: str,
    expires_at: Optional[float] = None,
    key: str = "sb-localhost-auth-token",
) -> Path:
    session = {"access_token": token}
    if expires_at is not None:
        session["expires_at"] = expires_at
    state = {
        "cookies": [],
        "origins": [
            {
                "origin": "http://localhost:8081",
                "localStorage": [{"name": key, "value": json.dumps(session)}],
            }
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state), encoding="utf-8")
    return path


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def probe_config(tmp_path: Path) -> ProbeConfig:
    return ProbeConfig(
        app_url="http://localhost:8081",
        backend_url="http://localhost:3001",
        supabase_url=SUPABASE_URL,
        service_role_key="service-role-key",
        auth_state_path=tmp_path / ".auth" / "user-state.json",
        output_root=tmp_path / "test-results",
    )


@pytest.fixture
def access_token() -> str:
    return make_jwt(
        {
            "sub": "user-123",
            "email": "probe@example.com",
            "exp": int(time.time()) + 3600,
        }
    )


@pytest.fixture
def saved_snapshot(probe_config: ProbeConfig, access_token: str) -> Path:
    return write_snapshot(probe_config.auth_state_path, access_token, expires_at=time.time() + 3600)
