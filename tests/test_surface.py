"""PlaywrightSurface error mapping and debug screenshots, against stand-in page objects."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError

from render_export import CaptureError, PageQueryError, PlaywrightSurface, RenderExportError, RenderSurface
from render_export.surface import take_debug_screenshots

CLOSED = "Target page, context or browser has been closed"


class ClosedLocator:
    @property
    def first(self):
        return self

    def nth(self, index):
        return self

    async def count(self):
        raise PlaywrightError(CLOSED)

    async def get_attribute(self, name):
        raise PlaywrightError(CLOSED)

    async def screenshot(self, **kwargs):
        raise PlaywrightError(CLOSED)


class ClosedPage:
    def locator(self, selector):
        return ClosedLocator()

    async def set_viewport_size(self, size):
        raise PlaywrightError(CLOSED)


class ClosedContext:
    async def add_cookies(self, cookies):
        raise PlaywrightError(CLOSED)


@pytest.fixture
def closed_surface() -> PlaywrightSurface:
    return PlaywrightSurface(ClosedContext(), ClosedPage())


class TestPlaywrightSurfaceErrors:
    def test_count_on_closed_page(self, closed_surface):
        with pytest.raises(PageQueryError) as excinfo:
            asyncio.run(closed_surface.query_element_count("kw-widget-container"))

        assert excinfo.value.stage == "query"
        assert isinstance(excinfo.value.__cause__, PlaywrightError)
        assert CLOSED in str(excinfo.value)

    def test_attributes_on_closed_page(self, closed_surface):
        with pytest.raises(PageQueryError):
            asyncio.run(closed_surface.query_attributes(".dashboard-print-preview-container", ["a", "b"]))

    @pytest.mark.parametrize(
        "operation",
        [
            lambda s: s.set_viewport(1600, 1000),
            lambda s: s.set_session_cookies([{"name": "n", "value": "v", "domain": "d", "path": "/"}]),
        ],
    )
    def test_configuration_on_closed_page(self, closed_surface, operation):
        with pytest.raises(RenderExportError) as excinfo:
            asyncio.run(operation(closed_surface))

        assert excinfo.value.stage == "configure"
        assert isinstance(excinfo.value.__cause__, PlaywrightError)

    def test_capture_on_closed_page(self, closed_surface):
        with pytest.raises(CaptureError):
            asyncio.run(closed_surface.capture_region(".preview-grid-stack", 1))


def test_surface_without_event_subscription_is_rejected():
    class Incomplete(RenderSurface):
        pass

    with pytest.raises(NotImplementedError):
        Incomplete().on("request", lambda request: None)
    with pytest.raises(NotImplementedError):
        Incomplete().remove_listener("request", lambda request: None)


class ScreenshotPage:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []

    async def screenshot(self, path, **kwargs):
        self.calls.append((path, kwargs))
        if len(self.calls) - 1 in self.fail_on:
            raise PlaywrightError("Page crashed")
        Path(path).write_bytes(b"jpeg")


class TestDebugScreenshots:
    def test_series_of_full_page_screenshots(self, tmp_path: Path):
        page = ScreenshotPage()

        taken = asyncio.run(take_debug_screenshots(page, tmp_path / "debug", interval_ms=1, count=3))

        assert taken == 3
        assert sorted(p.name for p in (tmp_path / "debug").iterdir()) == [
            "screenshot-0.jpg",
            "screenshot-1.jpg",
            "screenshot-2.jpg",
        ]
        assert all(kw["full_page"] and kw["type"] == "jpeg" for _, kw in page.calls)

    def test_failed_screenshot_does_not_stop_series(self, tmp_path: Path):
        page = ScreenshotPage(fail_on={1})

        taken = asyncio.run(take_debug_screenshots(page, tmp_path, interval_ms=1, count=3))

        assert taken == 3
        assert not (tmp_path / "screenshot-1.jpg").exists()
        assert (tmp_path / "screenshot-2.jpg").exists()

    def test_runs_until_cancelled(self, tmp_path: Path):
        page = ScreenshotPage()

        async def scenario():
            task = asyncio.create_task(take_debug_screenshots(page, tmp_path, interval_ms=5))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert len(page.calls) >= 2
