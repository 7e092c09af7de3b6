"""
Rendering surface: the browser page an export job drives.

``RenderSurface`` is what the orchestrator needs from a browser;
``PlaywrightSurface`` implements it on a Chromium page and
``open_chromium_surface`` scopes the browser so it is closed on every exit
path.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import BrowserConfig
from .errors import CaptureError, NavigationError, PageQueryError, RenderExportError
from .network import EventSource, attach_debug_console

log = logging.getLogger(__name__)

JPEG_QUALITY = 100


class RenderSurface(EventSource):
    """Operations an export job performs on a page. Subclass or duck-type."""

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        raise NotImplementedError

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
        raise NotImplementedError

    async def set_viewport(self, width: int, height: int) -> None:
        raise NotImplementedError

    async def set_session_cookies(self, cookies: Sequence[Dict[str, str]]) -> None:
        raise NotImplementedError

    async def navigate(self, url: str, timeout_ms: float) -> None:
        raise NotImplementedError

    async def wait_for_selector(self, selector: str, timeout_ms: float) -> None:
        raise NotImplementedError

    async def query_element_count(self, selector: str) -> int:
        raise NotImplementedError

    async def query_attributes(self, selector: str, names: Sequence[str]) -> Dict[str, Optional[str]]:
        raise NotImplementedError

    async def capture_region(self, selector: str, index: int = 0) -> bytes:
        raise NotImplementedError


class PlaywrightSurface(RenderSurface):
    def __init__(self, context: BrowserContext, page: Page):
        self.context = context
        self.page = page

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.page.on(event, handler)

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
        self.page.remove_listener(event, handler)

    async def set_viewport(self, width: int, height: int) -> None:
        try:
            await self.page.set_viewport_size({"width": width, "height": height})
        except PlaywrightError as exc:
            raise RenderExportError(
                f"Failed to set viewport {width}x{height}: {exc.message}", stage="configure"
            ) from exc

    async def set_session_cookies(self, cookies: Sequence[Dict[str, str]]) -> None:
        try:
            await self.context.add_cookies(list(cookies))
        except PlaywrightError as exc:
            raise RenderExportError(f"Failed to set session cookies: {exc.message}", stage="configure") from exc

    async def navigate(self, url: str, timeout_ms: float) -> None:
        try:
            response = await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(f"Navigation to {url} timed out after {timeout_ms:.0f}ms") from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Navigation to {url} failed: {exc.message}") from exc
        if response is not None:
            log.debug("Navigation response %s %s", response.status, response.url)

    async def wait_for_selector(self, selector: str, timeout_ms: float) -> None:
        try:
            await self.page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
        except PlaywrightError as exc:
            raise NavigationError(
                f"Element {selector} did not appear within {timeout_ms:.0f}ms", stage="wait_selector"
            ) from exc

    async def query_element_count(self, selector: str) -> int:
        try:
            return await self.page.locator(selector).count()
        except PlaywrightError as exc:
            raise PageQueryError(f"Counting {selector} failed: {exc.message}") from exc

    async def query_attributes(self, selector: str, names: Sequence[str]) -> Dict[str, Optional[str]]:
        element = self.page.locator(selector).first
        try:
            return {name: await element.get_attribute(name) for name in names}
        except PlaywrightError as exc:
            raise PageQueryError(f"Reading attributes of {selector} failed: {exc.message}") from exc

    async def capture_region(self, selector: str, index: int = 0) -> bytes:
        try:
            return await self.page.locator(selector).nth(index).screenshot(
                type="jpeg", quality=JPEG_QUALITY
            )
        except PlaywrightError as exc:
            raise CaptureError(f"Screenshot of {selector}[{index}] failed: {exc.message}") from exc


async def take_debug_screenshots(
    page: Page, directory: Path, interval_ms: float, count: Optional[int] = None
) -> int:
    """Save a full-page JPEG every ``interval_ms`` until cancelled or ``count`` is reached.

    Failures are logged and do not stop the series. Returns the number of
    attempts made.
    """
    directory.mkdir(parents=True, exist_ok=True)
    taken = 0
    while count is None or taken < count:
        path = directory / f"screenshot-{taken}.jpg"
        log.debug("[debug] Taking debug screenshot to: %s", path)
        try:
            await page.screenshot(path=str(path), type="jpeg", quality=JPEG_QUALITY, full_page=True)
        except PlaywrightError as exc:
            log.error("[debug] Screenshot failed: %s", exc.message)
        taken += 1
        if count is None or taken < count:
            await asyncio.sleep(interval_ms / 1000)
    return taken


@asynccontextmanager
async def open_chromium_surface(
    device_scale_factor: float,
    browser_config: Optional[BrowserConfig] = None,
    debug_console: bool = False,
    debug_screenshot_dir: Optional[Path] = None,
    debug_screenshot_interval_ms: float = 5000,
) -> AsyncIterator[PlaywrightSurface]:
    """Launch Chromium and yield a fresh page; the browser is always closed."""
    browser_config = browser_config or BrowserConfig()
    async with async_playwright() as p:
        log.info("Launch browser")
        try:
            browser: Browser = await p.chromium.launch(
                headless=browser_config.headless,
                executable_path=browser_config.executable_path,
                args=list(browser_config.launch_args),
            )
        except PlaywrightError as exc:
            raise RenderExportError(f"Failed to launch Chromium: {exc.message}", stage="launch") from exc

        detach_console: List[Callable[[], None]] = []
        screenshots: Optional[asyncio.Task] = None
        try:
            try:
                context = await browser.new_context(device_scale_factor=device_scale_factor)
                page = await context.new_page()
            except PlaywrightError as exc:
                raise RenderExportError(f"Failed to open a browser page: {exc.message}", stage="launch") from exc
            surface = PlaywrightSurface(context, page)
            if debug_console:
                detach_console.append(attach_debug_console(page))
            if debug_screenshot_dir is not None:
                screenshots = asyncio.create_task(
                    take_debug_screenshots(page, debug_screenshot_dir, debug_screenshot_interval_ms)
                )
            yield surface
        finally:
            if screenshots is not None:
                screenshots.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await screenshots
            for detach in detach_console:
                detach()
            log.info("Closing browser")
            await browser.close()
