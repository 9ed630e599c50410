"""
Browser PDF Service - FastAPI application.

GET /?url=<page> renders the page to an A4 PDF with a remote headless
browser. Each request is routed to a freshly identified BrowserSession
instance that keeps its browser warm for a short idle window.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel

from . import __version__
from .config import get_settings, validate_config_on_startup
from .errors import BrowserUnavailable, RenderError
from .instances import InstanceNamespace
from .remote_browser import BrowserPlatform
from .session_manager import BrowserSession

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Browser PDF Service",
    version=__version__,
    description="Renders web pages to PDF using a remote headless browser"
)

platform = BrowserPlatform(settings)
namespace = InstanceNamespace(
    lambda instance_id: BrowserSession(platform, settings, instance_id=instance_id)
)


# ============================================================================
# Lifecycle
# ============================================================================

@app.on_event("startup")
async def on_startup():
    validate_config_on_startup()
    logger.info("Browser PDF Service started")


@app.on_event("shutdown")
async def on_shutdown():
    """Release every warm browser and stop the Playwright driver."""
    await namespace.close_all()
    await platform.stop()


# ============================================================================
# Error Mapping
# ============================================================================

@app.exception_handler(BrowserUnavailable)
async def browser_unavailable_handler(request: Request, exc: BrowserUnavailable):
    logger.error(str(exc))
    return PlainTextResponse("Could not start browser instance.", status_code=500)


@app.exception_handler(RenderError)
async def render_error_handler(request: Request, exc: RenderError):
    logger.error(f"PDF rendering failed: {exc}")
    return PlainTextResponse("Could not render PDF.", status_code=500)


# ============================================================================
# Endpoints
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime
    instances: int
    platform_mode: str


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint for container orchestration."""
    return HealthResponse(
        timestamp=datetime.utcnow(),
        instances=len(namespace),
        platform_mode=settings.browser_mode,
    )


@app.get("/")
async def render_url(url: Optional[str] = None):
    """
    Render a URL to PDF.

    Returns:
        200 with the PDF body, 400 when `url` is missing, 500 when no browser
        could be started or rendering failed
    """
    if not url:
        return PlainTextResponse("Missing URL query parameter.", status_code=400)

    namespace.sweep()
    instance_id = namespace.new_unique_id()
    session = namespace.get(instance_id)
    try:
        pdf = await session.render_url_to_pdf(url)
    finally:
        namespace.release_if_idle(instance_id)

    return Response(content=pdf, media_type="application/pdf")
