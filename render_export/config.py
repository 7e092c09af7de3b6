"""
Runtime configuration for export jobs.

Everything a component needs is handed to it explicitly; ``ExportConfig`` is
built once by the CLI (or by the caller) and passed to the orchestrator.
Values can be overridden through ``RENDER_EXPORT_*`` environment variables,
nested sections with a double underscore, e.g.
``RENDER_EXPORT_BROWSER__HEADLESS=false`` or
``RENDER_EXPORT_WAIT__POLL_INTERVAL_MS=100``.
"""

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .geometry import DEFAULT_PADDING_MM

ENV_PREFIX = "RENDER_EXPORT_"

DEFAULT_LAUNCH_ARGS = (
    "--accept-lang=en-GB",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)

PRINCIPAL_COOKIE = "X-KAWA-PRINCIPAL-ID"
API_KEY_COOKIE = "X-KAWA-API-KEY"


class BrowserConfig(BaseModel):
    """Chromium launch options"""

    model_config = ConfigDict(frozen=True)

    executable_path: Optional[str] = None
    headless: bool = True
    launch_args: Tuple[str, ...] = DEFAULT_LAUNCH_ARGS
    navigation_timeout_ms: float = Field(60000, gt=0)


class WaitConfig(BaseModel):
    """Readiness timings, all in milliseconds"""

    model_config = ConfigDict(frozen=True)

    first_request_grace_ms: float = Field(1000, ge=0)
    settle_grace_ms: float = Field(3000, ge=0)
    hard_timeout_ms: float = Field(180000, gt=0)
    max_inflight_requests: int = Field(0, ge=0)
    convergence_deadline_ms: float = Field(60000, ge=0)
    poll_interval_ms: float = Field(250, gt=0)
    render_idle_grace_ms: float = Field(2000, ge=0)
    render_idle_timeout_ms: float = Field(30000, gt=0)
    render_settle_ms: float = Field(2000, ge=0)
    selector_timeout_ms: float = Field(30000, gt=0)


class ExportConfig(BaseSettings):
    """Export settings (environment overridable)"""

    server_url: str = ""
    output_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    padding_mm: float = Field(DEFAULT_PADDING_MM, ge=0, allow_inf_nan=False)
    keep_images: bool = False
    debug_console: bool = False
    debug_screenshot_dir: Optional[Path] = None
    debug_screenshot_interval_ms: float = Field(5000, gt=0)

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    wait: WaitConfig = Field(default_factory=WaitConfig)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    @classmethod
    def from_env(cls, **overrides) -> "ExportConfig":
        """Environment first, then explicit overrides; ``None`` means unset."""
        values = {k: v for k, v in overrides.items() if v is not None}
        try:
            return cls(**values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            )
            raise ConfigError(f"Invalid configuration: {problems}") from exc


@dataclass(frozen=True)
class AuthContext:
    principal_id: str
    api_key: Optional[str] = None
    cookie_domain: Optional[str] = None

    def cookies(self, server_url: str) -> List[Dict[str, str]]:
        domain = self.cookie_domain or urlparse(server_url).hostname
        if not domain:
            raise ConfigError(f"Cannot derive a cookie domain from server url {server_url!r}")
        cookies = [{"name": PRINCIPAL_COOKIE, "value": self.principal_id, "domain": domain, "path": "/"}]
        if self.api_key:
            cookies.append({"name": API_KEY_COOKIE, "value": self.api_key, "domain": domain, "path": "/"})
        return cookies


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Keep the first 7 characters of an identifier, star out the rest."""
    if value is None or len(value) <= 7:
        return value
    return value[:7] + "*" * (len(value) - 7)
