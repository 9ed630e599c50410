"""
Session Manager - browser lease, retry and keep-alive policy.

Each BrowserSession owns at most one RemoteBrowser. Launch failures are
retried with a kill-all cleanup of the account's sessions in between, and a
keep-alive alarm releases the browser after a fixed idle budget.

Kill-all cleanup does not distinguish this instance's sessions from anyone
else's: a concurrent instance sharing the platform account will lose its
browser. This is the admission control against the platform's account-wide
concurrent session cap.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .alarm import AlarmScheduler, now_ms
from .config import RendererSettings, get_settings
from .errors import (
    BrowserPdfError,
    BrowserUnavailable,
    CleanupError,
    LaunchError,
    RegistryError,
    RenderError,
)
from .remote_browser import BrowserPlatform, RemoteBrowser

logger = logging.getLogger(__name__)

PDF_OPTIONS = {"format": "A4", "print_background": True}


class SessionState(str, Enum):
    """Browser lease states."""
    NO_HANDLE = "no_handle"
    CONNECTED = "connected"
    EXHAUSTED_RETRIES = "exhausted_retries"


class SessionReaper:
    """Connects to and closes every active session visible to the account."""

    def __init__(self, platform: BrowserPlatform):
        self.platform = platform

    async def reap(self) -> int:
        """
        Close all sessions listed by the registry.

        Never raises. Registry and per-session failures are logged and skipped.

        Returns:
            Number of sessions closed
        """
        try:
            sessions = await self.platform.list_sessions()
        except RegistryError as e:
            logger.warning(f"Skipping session cleanup: {e}")
            return 0

        closed = 0
        for session in sessions:
            try:
                browser = await self.platform.connect(session.session_id, session.connect_url)
                await browser.close()
                closed += 1
            except BrowserPdfError as e:
                logger.warning(f"Session cleanup failed for {session.session_id}: {e}")
            except Exception as e:
                logger.warning(f"Unexpected error closing session {session.session_id}: {e}")

        logger.info(f"Session cleanup closed {closed}/{len(sessions)} sessions")
        return closed


class BrowserSession:
    """
    One service instance's browser lease.

    Operations on an instance run one at a time; the keep-alive alarm waits
    for an in-flight render to finish before it can release the browser.
    """

    def __init__(
        self,
        platform: BrowserPlatform,
        settings: Optional[RendererSettings] = None,
        reaper: Optional[SessionReaper] = None,
        cleanup_enabled: bool = True,
        instance_id: Optional[str] = None,
    ):
        self.platform = platform
        self.settings = settings or get_settings()
        self.reaper = reaper or SessionReaper(platform)
        self.cleanup_enabled = cleanup_enabled
        self.instance_id = instance_id

        self.browser: Optional[RemoteBrowser] = None
        self.kept_alive_seconds = 0
        self._exhausted = False
        self._closed = False
        self._lock = asyncio.Lock()
        self.alarm_scheduler = AlarmScheduler(self.alarm, name=f"keepalive-{instance_id or id(self)}")

    @property
    def state(self) -> SessionState:
        if self.browser is not None and self.browser.is_connected():
            return SessionState.CONNECTED
        if self._exhausted:
            return SessionState.EXHAUSTED_RETRIES
        return SessionState.NO_HANDLE

    @property
    def is_idle(self) -> bool:
        """True when the instance holds no browser and no alarm is pending."""
        return self.browser is None and not self.alarm_scheduler.pending

    # ========================================================================
    # Browser lease
    # ========================================================================

    async def ensure_browser_ready(self) -> bool:
        """
        Make sure a connected browser is held, launching one if needed.

        Returns:
            False only when every launch attempt failed
        """
        async with self._lock:
            return await self._ensure_browser_ready()

    async def _ensure_browser_ready(self) -> bool:
        if self.browser is not None and self.browser.is_connected():
            return True

        await self._release_browser()
        attempts = self.settings.launch_retries

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                retry=retry_if_exception_type(LaunchError),
                reraise=True,
            ):
                with attempt:
                    try:
                        browser = await self.platform.launch()
                    except LaunchError as e:
                        logger.error(f"Could not start browser instance. Error: {e}")
                        retries_left = attempts - attempt.retry_state.attempt_number
                        if retries_left:
                            await self._cleanup_sessions()
                            logger.info(f"Retrying to start browser instance. Retries left: {retries_left}")
                        raise
        except LaunchError:
            self._exhausted = True
            return False

        self.browser = browser
        self._exhausted = False
        self._closed = False
        self.kept_alive_seconds = 0
        self.alarm_scheduler.arm(now_ms() + self.settings.keepalive_tick_ms)
        return True

    async def _cleanup_sessions(self) -> None:
        if not self.cleanup_enabled:
            return
        await self.reaper.reap()

    async def _release_browser(self) -> None:
        browser, self.browser = self.browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except CleanupError as e:
            logger.warning(f"Error releasing browser: {e}")

    # ========================================================================
    # Rendering
    # ========================================================================

    async def render_url_to_pdf(self, url: str) -> bytes:
        """
        Navigate to a URL and export it as an A4 PDF.

        Args:
            url: Page to render

        Returns:
            PDF bytes

        Raises:
            BrowserUnavailable: no browser within the launch retry budget
            RenderError: navigation or PDF extraction failed (not retried)
        """
        async with self._lock:
            if not await self._ensure_browser_ready():
                raise BrowserUnavailable(self.settings.launch_retries)

            try:
                async with self.browser.page() as page:
                    await page.goto(url, wait_until="networkidle")
                    pdf = await page.pdf(**PDF_OPTIONS)
            except PlaywrightError as e:
                raise RenderError(f"Could not render {url}: {e}") from e

            logger.info(f"Rendered {url} ({len(pdf)} bytes)")
            return pdf

    async def generate_pdf(self, body: str, filename: str = "document.pdf") -> Optional[bytes]:
        """
        Render an HTML document to an A4 PDF using screen styles.

        Never raises: any failure is logged and yields None. `filename` is
        caller metadata only.
        """
        async with self._lock:
            try:
                if not await self._ensure_browser_ready():
                    return None

                async with self.browser.page() as page:
                    await page.emulate_media(media="screen")
                    await page.set_content(body)
                    pdf = await page.pdf(**PDF_OPTIONS)
            except Exception as e:
                logger.error(f"Could not generate PDF {filename}. Error: {e}")
                return None

            if not pdf:
                logger.error(f"Could not generate PDF {filename}. Error: empty output")
                return None
            logger.info(f"Generated {filename} ({len(pdf)} bytes)")
            return pdf

    # ========================================================================
    # Keep-alive
    # ========================================================================

    async def alarm(self) -> None:
        """Keep-alive tick: re-arm while under the idle budget, else release."""
        async with self._lock:
            # A tick queued behind close() must not re-arm
            if self._closed:
                return
            self.kept_alive_seconds += self.settings.keepalive_tick_seconds
            if self.kept_alive_seconds < self.settings.keep_browser_alive_seconds:
                logger.debug(f"Keeping browser alive ({self.kept_alive_seconds}s idle)")
                self.alarm_scheduler.arm(now_ms() + self.settings.keepalive_tick_ms)
                return

            logger.info(f"Releasing browser after {self.kept_alive_seconds}s idle")
            await self._release_browser()

    async def close(self) -> None:
        """Cancel the keep-alive alarm and release the browser."""
        self._closed = True
        self.alarm_scheduler.cancel()
        async with self._lock:
            self.alarm_scheduler.cancel()
            await self._release_browser()
