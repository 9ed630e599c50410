"""
Browser PDF Service Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RendererSettings(BaseSettings):
    """
    Browser PDF service configuration with validation.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix, use exact env var names
        case_sensitive=False,  # BROWSER_MODE = browser_mode
        extra="ignore",
    )

    # === Remote Browser Platform ===
    browser_mode: str = Field(
        default="remote",
        description="'remote' connects to a browser platform over CDP, 'local' launches Chromium"
    )
    browser_ws_endpoint: str = Field(
        default="ws://localhost:3000",
        description="CDP websocket endpoint used to launch remote browsers"
    )
    browser_api_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the platform session registry"
    )
    browser_token: Optional[str] = Field(
        default=None,
        description="Platform API token (sent as the 'token' query parameter)"
    )

    # === Playwright ===
    playwright_headless: bool = Field(
        default=True,
        description="Run local Chromium headless"
    )
    playwright_timeout: int = Field(
        default=30000,
        ge=1000,
        le=300000,
        description="Default page timeout in milliseconds"
    )

    # === Lease / Keep-alive ===
    launch_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Launch attempts per ensure_browser_ready call"
    )
    keep_browser_alive_seconds: int = Field(
        default=60,
        ge=0,
        description="Idle budget before the warm browser is released"
    )
    keepalive_tick_seconds: int = Field(
        default=10,
        ge=1,
        description="Keep-alive alarm interval and idle counter step"
    )
    registry_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for session registry calls"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("browser_mode")
    @classmethod
    def validate_browser_mode(cls, v: str) -> str:
        """Validate browser mode is a known value."""
        allowed = {"remote", "local"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"browser_mode must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("browser_ws_endpoint")
    @classmethod
    def validate_ws_endpoint(cls, v: str) -> str:
        """Basic websocket URL format validation."""
        if not v.startswith(("ws://", "wss://", "http://", "https://")):
            raise ValueError(f"Invalid CDP endpoint format: {v}")
        return v.rstrip("/")

    @field_validator("browser_api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Basic URL format validation."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL format: {v}")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @property
    def is_remote(self) -> bool:
        """Check if browsers are obtained from the remote platform."""
        return self.browser_mode == "remote"

    @property
    def keepalive_tick_ms(self) -> int:
        return self.keepalive_tick_seconds * 1000

    def with_token(self, url: str) -> str:
        """Append the platform token to a URL, if one is configured."""
        if not self.browser_token:
            return url
        parts = urlsplit(url)
        query = parse_qsl(parts.query)
        query.append(("token", self.browser_token))
        return urlunsplit(parts._replace(query=urlencode(query)))


@lru_cache()
def get_settings() -> RendererSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for performance.
    Use this function to access configuration throughout the app.
    """
    return RendererSettings()


def validate_config_on_startup() -> RendererSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    """
    try:
        settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    # Log loaded configuration (redact secrets)
    logger.info(f"Configuration loaded: browser_mode={settings.browser_mode}")
    if settings.is_remote:
        logger.info(f"  browser_ws_endpoint={settings.browser_ws_endpoint}")
        logger.info(f"  browser_api_url={settings.browser_api_url}")
        logger.info(f"  browser_token={'*****' if settings.browser_token else None}")
    else:
        logger.info(f"  playwright_headless={settings.playwright_headless}")
    logger.info(f"  launch_retries={settings.launch_retries}")
    logger.info(
        f"  keep_alive={settings.keep_browser_alive_seconds}s "
        f"(tick {settings.keepalive_tick_seconds}s)"
    )
    return settings
