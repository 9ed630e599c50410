"""
Remote Browser Handle for Playwright

Thin wrapper around a single Playwright browser connection plus the
platform binding used to launch, list and reattach remote sessions.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import RendererSettings
from .errors import CleanupError, ConnectError, LaunchError, RegistryError, RenderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionDescriptor:
    """An active remote browser session as reported by the platform registry."""

    session_id: str
    connect_url: Optional[str] = None

    @classmethod
    def from_registry(cls, entry: Dict[str, Any]) -> Optional["SessionDescriptor"]:
        """Build a descriptor from one registry entry, or None if it has no id."""
        session_id = entry.get("sessionId") or entry.get("id")
        if not session_id:
            return None
        connect_url = (
            entry.get("connectUrl")
            or entry.get("webSocketDebuggerUrl")
            or entry.get("browserWSEndpoint")
        )
        return cls(session_id=str(session_id), connect_url=connect_url)


class RemoteBrowser:
    """A live connection to one headless browser process."""

    def __init__(
        self,
        browser: Browser,
        session_id: Optional[str] = None,
        timeout_ms: int = 30000,
        terminate_on_close: bool = False,
    ):
        self._browser = browser
        self.session_id = session_id
        self._timeout_ms = timeout_ms
        # CDP-attached browsers only disconnect on close(); the process must be told to exit
        self._terminate_on_close = terminate_on_close
        self._closed = False

    def is_connected(self) -> bool:
        """True iff the underlying connection is currently usable."""
        return not self._closed and self._browser.is_connected()

    async def new_page(self) -> Page:
        """Open a fresh page with the configured default timeout."""
        try:
            page = await self._browser.new_page()
        except PlaywrightError as e:
            raise RenderError(f"Could not open page: {e}") from e
        page.set_default_timeout(self._timeout_ms)
        return page

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """
        Yield a short-lived page that is closed on every exit path.

        A failure to close the page is logged; it never masks the result
        or the error of the block.
        """
        page = await self.new_page()
        try:
            yield page
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.warning(f"Failed to close page: {e}")

    async def close(self) -> None:
        """
        Release the browser process. Idempotent.

        Raises:
            CleanupError: the platform rejected the close
        """
        if self._closed:
            return
        self._closed = True
        if self._terminate_on_close:
            await self._terminate_remote()
        try:
            await self._browser.close()
        except PlaywrightError as e:
            raise CleanupError(self.session_id or "<unknown>", str(e)) from e
        logger.debug(f"Browser closed (session={self.session_id})")

    async def _terminate_remote(self) -> None:
        """Ask the remote process to exit; the connection drops as it does."""
        try:
            cdp = await self._browser.new_browser_cdp_session()
            await cdp.send("Browser.close")
        except PlaywrightError as e:
            logger.debug(f"Browser.close ended CDP connection (session={self.session_id}): {e}")


class BrowserPlatform:
    """
    Binding to the browser hosting platform.

    In 'remote' mode browsers are obtained over CDP from the platform and the
    session registry is queried over HTTP. In 'local' mode Chromium is
    launched on this host and there is no registry.
    """

    def __init__(self, settings: RendererSettings):
        self.settings = settings
        self._playwright: Optional[Playwright] = None
        self._driver_lock = asyncio.Lock()

    async def _driver(self) -> Playwright:
        """
        Start the Playwright driver on first use.

        Raises:
            LaunchError: the driver process could not be started
        """
        async with self._driver_lock:
            if self._playwright is None:
                try:
                    self._playwright = await async_playwright().start()
                except Exception as e:
                    raise LaunchError(f"Playwright driver failed to start: {e}") from e
                logger.info("Playwright driver started")
            return self._playwright

    async def launch(self) -> RemoteBrowser:
        """
        Start a new browser under the configured platform binding.

        Returns:
            RemoteBrowser handle

        Raises:
            LaunchError: quota exhausted, network failure or platform rejection
        """
        timeout = self.settings.playwright_timeout
        try:
            playwright = await self._driver()
            if self.settings.is_remote:
                endpoint = self.settings.with_token(self.settings.browser_ws_endpoint)
                browser = await playwright.chromium.connect_over_cdp(endpoint, timeout=timeout)
            else:
                browser = await playwright.chromium.launch(
                    headless=self.settings.playwright_headless,
                    args=["--no-sandbox", "--disable-dev-shm-usage"],
                )
        except PlaywrightError as e:
            raise LaunchError(str(e)) from e

        logger.info(f"Browser launched (mode={self.settings.browser_mode})")
        return RemoteBrowser(browser, timeout_ms=timeout, terminate_on_close=self.settings.is_remote)

    async def list_sessions(self) -> List[SessionDescriptor]:
        """
        Enumerate active sessions visible to this account.

        Raises:
            RegistryError: the registry could not be reached or answered garbage
        """
        if not self.settings.is_remote:
            return []

        params = {"token": self.settings.browser_token} if self.settings.browser_token else None
        try:
            async with httpx.AsyncClient(timeout=self.settings.registry_timeout_seconds) as client:
                response = await client.get(f"{self.settings.browser_api_url}/sessions", params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RegistryError(f"Session registry unavailable: {e}") from e

        # Some platforms wrap the list: {"sessions": [...]}
        if isinstance(data, dict):
            data = data.get("sessions", [])
        if not isinstance(data, list):
            raise RegistryError(f"Unexpected session registry payload: {type(data).__name__}")

        sessions = []
        for entry in data:
            if isinstance(entry, dict):
                descriptor = SessionDescriptor.from_registry(entry)
                if descriptor is not None:
                    sessions.append(descriptor)
        return sessions

    async def connect(self, session_id: str, connect_url: Optional[str] = None) -> RemoteBrowser:
        """
        Reattach to an existing remote session.

        Args:
            session_id: Platform-assigned session identifier
            connect_url: CDP URL reported by the registry, if any

        Raises:
            ConnectError: the session no longer exists or cannot be reached
        """
        if not self.settings.is_remote:
            raise ConnectError(session_id, "local mode has no session registry")

        url = connect_url or f"{self.settings.browser_ws_endpoint}/devtools/browser/{session_id}"
        try:
            playwright = await self._driver()
            browser = await playwright.chromium.connect_over_cdp(
                self.settings.with_token(url),
                timeout=self.settings.playwright_timeout,
            )
        except (PlaywrightError, LaunchError) as e:
            raise ConnectError(session_id, str(e)) from e
        return RemoteBrowser(
            browser,
            session_id=session_id,
            timeout_ms=self.settings.playwright_timeout,
            terminate_on_close=True,
        )

    async def stop(self) -> None:
        """Stop the Playwright driver."""
        async with self._driver_lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("Playwright driver stopped")
