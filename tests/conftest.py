"""Shared fixtures: in-memory stand-ins for the browser page and images."""

from __future__ import annotations

import asyncio
import io
import logging
import sys
from collections import defaultdict
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image

from render_export import (
    CaptureError,
    ExportConfig,
    NavigationError,
    RenderSurface,
    WaitConfig,
)

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)


def make_jpeg(width: int = 160, height: int = 100, color: str = "red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, "JPEG")
    return buf.getvalue()


class FakeRequest:
    def __init__(self, url: str):
        self.url = url


class FakeEventSource:
    """Playwright-style emitter: ``on``/``remove_listener`` plus ``emit``."""

    def __init__(self):
        self.listeners: Dict[str, List[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners[event].append(handler)

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners[event].remove(handler)

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self.listeners[event]):
            handler(payload if payload is not None else FakeRequest("http://app.test/asset.js"))

    def listener_count(self) -> int:
        return sum(len(handlers) for handlers in self.listeners.values())


class FakeSurface(FakeEventSource, RenderSurface):
    """Scripted page: element counts, host attributes and screenshots."""

    def __init__(
        self,
        counts: Optional[Dict[str, Any]] = None,
        attributes: Optional[Dict[str, str]] = None,
        images: Optional[List[bytes]] = None,
        compute_batches: int = 0,
        hanging_requests: int = 0,
        navigate_error: bool = False,
        fail_capture_at: Optional[int] = None,
    ):
        super().__init__()
        self.counts = counts or {}
        self.attributes = attributes or {}
        self.images = images or []
        self.compute_batches = compute_batches
        self.hanging_requests = hanging_requests
        self.navigate_error = navigate_error
        self.fail_capture_at = fail_capture_at

        self.viewport = None
        self.cookies: List[Dict[str, str]] = []
        self.url: Optional[str] = None
        self.waited_selectors: List[str] = []
        self.captured: List[tuple] = []
        self.device_scale_factor: Optional[float] = None
        self.opened = False
        self.closed = False

    async def set_viewport(self, width: int, height: int) -> None:
        self.viewport = (width, height)

    async def set_session_cookies(self, cookies) -> None:
        self.cookies = list(cookies)

    async def navigate(self, url: str, timeout_ms: float) -> None:
        self.url = url
        if self.navigate_error:
            raise NavigationError(f"Navigation to {url} failed: net::ERR_CONNECTION_REFUSED")

        loop = asyncio.get_running_loop()
        self.emit("request", FakeRequest(url))
        loop.call_later(0.005, self.emit, "requestfinished", FakeRequest(url))
        for _ in range(self.compute_batches):
            batch = FakeRequest("http://app.test/api/computation/compute-batch")
            self.emit("request", batch)
            loop.call_later(0.01, self.emit, "response", batch)
            loop.call_later(0.01, self.emit, "requestfinished", batch)
        for _ in range(self.hanging_requests):
            self.emit("request", FakeRequest("http://app.test/api/stream"))

    async def wait_for_selector(self, selector: str, timeout_ms: float) -> None:
        self.waited_selectors.append(selector)

    async def query_element_count(self, selector: str) -> int:
        value = self.counts.get(selector, 0)
        return value() if callable(value) else value

    async def query_attributes(self, selector: str, names) -> Dict[str, Optional[str]]:
        return {name: self.attributes.get(name) for name in names}

    async def capture_region(self, selector: str, index: int = 0) -> bytes:
        if index == self.fail_capture_at:
            raise CaptureError(f"Screenshot of {selector}[{index}] failed")
        self.captured.append((selector, index))
        return self.images[index]


def surface_factory(surface: FakeSurface):
    @asynccontextmanager
    async def factory(device_scale_factor: float):
        surface.device_scale_factor = device_scale_factor
        surface.opened = True
        try:
            yield surface
        finally:
            surface.closed = True

    return factory


FAST_WAITS = WaitConfig(
    first_request_grace_ms=20,
    settle_grace_ms=20,
    hard_timeout_ms=2000,
    convergence_deadline_ms=300,
    poll_interval_ms=10,
    render_idle_grace_ms=10,
    render_idle_timeout_ms=1000,
    render_settle_ms=0,
    selector_timeout_ms=100,
)


@pytest.fixture
def events() -> FakeEventSource:
    return FakeEventSource()


@pytest.fixture
def jpeg_pages() -> List[bytes]:
    return [make_jpeg(color=c) for c in ("red", "green", "blue")]


@pytest.fixture
def fast_config(tmp_path: Path) -> ExportConfig:
    return ExportConfig(
        server_url="http://app.test:8080",
        output_dir=tmp_path / "out",
        wait=FAST_WAITS,
    )
