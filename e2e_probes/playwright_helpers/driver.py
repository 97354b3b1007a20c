"""Page automation driver used by probes.

Probes talk to the page only through ``PageDriver``, addressing elements by
their ``data-testid``. ``PlaywrightPageDriver`` implements it over a sync
Playwright ``Page``; tests substitute a fake.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from playwright.sync_api import Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

DEFAULT_WAIT_MS = 10_000
NAVIGATION_TIMEOUT_MS = 30_000

# Browser console noise that says nothing about the app under test.
IGNORED_CONSOLE_FRAGMENTS = ("X-Frame-Options",)


class ElementNotFoundError(Exception):
    """Raised when no element carries the requested test id."""
    pass


class PageDriver(Protocol):
    def goto(self, url: str) -> None: ...

    def find_by_test_id(self, test_id: str) -> Locator: ...

    def is_present(self, test_id: str) -> bool: ...

    def click(self, test_id: str) -> None: ...

    def fill(self, test_id: str, text: str) -> None: ...

    def wait_for_visible(self, test_id: str, timeout_ms: int = DEFAULT_WAIT_MS) -> bool: ...

    def text_of(self, test_id: str) -> str: ...

    def texts_of(self, test_id: str) -> List[str]: ...

    def attributes_of_all(self, test_id: str, *names: str) -> List[Dict[str, Optional[str]]]: ...

    def local_storage_keys(self) -> List[str]: ...

    def screenshot(self, path: Path) -> Path: ...


class PlaywrightPageDriver:
    """``PageDriver`` backed by a synchronous Playwright page."""

    def __init__(self, page: Page, logger: Optional[logging.Logger] = None) -> None:
        self.page = page
        self.logger = logger or logging.getLogger(__name__)
        self.page.on("console", self._on_console)

    def _on_console(self, message) -> None:
        if message.type != "error":
            return
        text = message.text
        if any(fragment in text for fragment in IGNORED_CONSOLE_FRAGMENTS):
            return
        self.logger.warning(f"Browser console error: {text}")

    def goto(self, url: str) -> None:
        self.page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        self.logger.debug(f"Navigated to {url}")

    def find_by_test_id(self, test_id: str) -> Locator:
        locator = self.page.get_by_test_id(test_id)
        if locator.count() == 0:
            raise ElementNotFoundError(f"No element with data-testid='{test_id}' on {self.page.url}")
        return locator.first

    def is_present(self, test_id: str) -> bool:
        return self.page.get_by_test_id(test_id).count() > 0

    def click(self, test_id: str) -> None:
        self.find_by_test_id(test_id).click()
        self.logger.debug(f"Clicked [{test_id}]")

    def fill(self, test_id: str, text: str) -> None:
        self.find_by_test_id(test_id).fill(text)
        self.logger.debug(f"Filled [{test_id}]")

    def wait_for_visible(self, test_id: str, timeout_ms: int = DEFAULT_WAIT_MS) -> bool:
        """Wait for the element to become visible; False on timeout rather than raising."""
        try:
            self.page.get_by_test_id(test_id).first.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            self.logger.warning(f"[{test_id}] not visible after {timeout_ms}ms")
            return False
        return True

    def text_of(self, test_id: str) -> str:
        return self.find_by_test_id(test_id).inner_text().strip()

    def texts_of(self, test_id: str) -> List[str]:
        return [text.strip() for text in self.page.get_by_test_id(test_id).all_inner_texts()]

    def attributes_of_all(self, test_id: str, *names: str) -> List[Dict[str, Optional[str]]]:
        return [
            {name: element.get_attribute(name) for name in names}
            for element in self.page.get_by_test_id(test_id).all()
        ]

    def local_storage_keys(self) -> List[str]:
        return self.page.evaluate("() => Object.keys(window.localStorage)")

    def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.page.screenshot(path=str(path), full_page=True)
        self.logger.info(f"Screenshot: {path.name}")
        return path


__all__ = ["ElementNotFoundError", "PageDriver", "PlaywrightPageDriver"]
