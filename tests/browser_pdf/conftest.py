"""
Pytest fixtures for browser PDF service tests.

FakePlatform stands in for the remote browser platform: it enforces an
account-wide session cap, lists live sessions and lets any caller connect to
and close them, the way the real registry does.
"""

import os

# Set environment variables BEFORE any imports from browser_pdf so the
# cached settings are built from them.
os.environ["BROWSER_MODE"] = "remote"
os.environ["BROWSER_WS_ENDPOINT"] = "wss://browser.test"
os.environ["BROWSER_API_URL"] = "https://browser.test"
os.environ.pop("BROWSER_TOKEN", None)

import itertools
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from browser_pdf.config import RendererSettings
from browser_pdf.errors import ConnectError, LaunchError, RegistryError
from browser_pdf.remote_browser import RemoteBrowser, SessionDescriptor
from browser_pdf.session_manager import BrowserSession

FAKE_PDF = b"%PDF-1.4 fake pdf content"


def make_page(pdf: bytes = FAKE_PDF) -> MagicMock:
    """Mock Playwright page with async navigation/render methods."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.emulate_media = AsyncMock()
    page.set_content = AsyncMock()
    page.pdf = AsyncMock(return_value=pdf)
    page.close = AsyncMock()
    return page


class FakeCdpBrowser:
    """Playwright Browser double bound to a FakePlatform session."""

    def __init__(self, platform: "FakePlatform", session_id: str):
        self.platform = platform
        self.session_id = session_id
        self.connected = True
        self.pages: List[MagicMock] = []

    def is_connected(self) -> bool:
        return self.connected

    async def new_page(self):
        page = self.platform.page_factory()
        self.pages.append(page)
        return page

    async def close(self):
        if self.platform.close_fails:
            raise PlaywrightError("close rejected")
        self.connected = False
        self.platform.live.pop(self.session_id, None)


class FakePlatform:
    """In-memory browser platform with a concurrent session cap."""

    def __init__(self, session_cap: int = 2, fail_launches: int = 0):
        self.session_cap = session_cap
        self.fail_launches = fail_launches
        self.close_fails = False
        self.registry_fails = False
        self.live: Dict[str, FakeCdpBrowser] = {}
        self.launch_calls = 0
        self.connect_calls: List[str] = []
        self.page_factory = make_page
        self._ids = itertools.count(1)

    async def launch(self) -> RemoteBrowser:
        self.launch_calls += 1
        if self.fail_launches > 0:
            self.fail_launches -= 1
            raise LaunchError("platform rejected launch")
        if len(self.live) >= self.session_cap:
            raise LaunchError("concurrent session limit reached")
        session_id = f"session-{next(self._ids)}"
        browser = FakeCdpBrowser(self, session_id)
        self.live[session_id] = browser
        return RemoteBrowser(browser, session_id=session_id)

    async def list_sessions(self) -> List[SessionDescriptor]:
        if self.registry_fails:
            raise RegistryError("registry down")
        return [SessionDescriptor(session_id=sid) for sid in self.live]

    async def connect(self, session_id: str, connect_url: Optional[str] = None) -> RemoteBrowser:
        self.connect_calls.append(session_id)
        browser = self.live.get(session_id)
        if browser is None:
            raise ConnectError(session_id, "no such session")
        return RemoteBrowser(browser, session_id=session_id)

    async def stop(self):
        pass


@pytest.fixture
def settings():
    """Settings with the default lease policy."""
    return RendererSettings(
        browser_mode="remote",
        browser_ws_endpoint="wss://browser.test",
        browser_api_url="https://browser.test",
        launch_retries=3,
        keep_browser_alive_seconds=60,
        keepalive_tick_seconds=10,
    )


@pytest.fixture
def fake_platform():
    return FakePlatform()


@pytest.fixture
def make_session(fake_platform, settings):
    """Factory for BrowserSession instances bound to the fake platform."""
    def _make(platform=None, **kwargs):
        return BrowserSession(platform or fake_platform, settings, **kwargs)
    return _make
