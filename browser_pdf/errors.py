"""
Exception hierarchy for the browser PDF service.

Launch failures are recovered locally by the session manager's retry loop.
Render failures are raised on the URL path and turned into a missing result
on the HTML path. Registry and cleanup failures are always swallowed.
"""

from typing import Optional


class BrowserPdfError(Exception):
    """Base class for all service errors."""


class LaunchError(BrowserPdfError):
    """The platform refused or failed to start a new browser."""


class ConnectError(BrowserPdfError):
    """Reattaching to an existing remote session failed."""

    def __init__(self, session_id: Optional[str], message: str):
        self.session_id = session_id
        super().__init__(f"Could not connect to session {session_id}: {message}")


class RegistryError(BrowserPdfError):
    """The platform session registry could not be queried."""


class RenderError(BrowserPdfError):
    """Navigation, content injection or PDF extraction failed."""


class CleanupError(BrowserPdfError):
    """Closing an orphaned session during kill-all cleanup failed."""

    def __init__(self, session_id: str, message: str):
        self.session_id = session_id
        super().__init__(f"Could not close session {session_id}: {message}")


class BrowserUnavailable(BrowserPdfError):
    """No browser could be obtained within the launch retry budget."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not start browser instance after {attempts} attempts")
