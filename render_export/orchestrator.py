"""
Export jobs end to end: geometry -> browser -> readiness -> capture -> PDF.
"""

import logging
import time
import uuid
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Callable, List, Optional

from .assembler import DocumentAssembler
from .config import ExportConfig, mask_secret
from .errors import CaptureError, ConfigError
from .geometry import (
    DEVICE_SCALE_FACTOR,
    VIEWPORT_LARGER_SIDE,
    VIEWPORT_SMALLER_SIDE,
    PageGeometryPlan,
    plan_page,
)
from .models import ChartExportJob, DashboardExportJob, ExportArtifact
from .network import ComputeResultTracker, NetworkIdleDetector
from .readiness import ConvergenceTarget, ReadinessConvergencePoller
from .surface import RenderSurface, open_chromium_surface

log = logging.getLogger(__name__)

HOST_SELECTOR = ".dashboard-print-preview-container"
PAGE_SELECTOR = ".preview-grid-stack"
WIDGET_SELECTOR = "kw-widget-container"
SHEET_WIDGET_SELECTOR = "kw-sheet-widget"
CHART_SELECTOR = ".custom-charts-elements-container"

TOTAL_WIDGETS_ATTR = "total-widgets-count"
SHEET_WIDGETS_ATTR = "sheet-widgets-count"
PAGE_COUNT_ATTR = "print-layout-page-count"

SurfaceFactory = Callable[[float], AbstractAsyncContextManager]


def dashboard_url(server_url: str, job: DashboardExportJob) -> str:
    size = job.page_size
    return (
        f"{server_url.rstrip('/')}/workspaces/{job.workspace_id}/dashboards/{job.dashboard_id}"
        f"?mode=export&width={format_mm(size.width_mm)}&height={format_mm(size.height_mm)}&fullPage=true"
    )


def chart_url(server_url: str, job: ChartExportJob) -> str:
    return (
        f"{server_url.rstrip('/')}/workspaces/{job.workspace_id}/sheets/{job.sheet_id}"
        f"/views/{job.layout_id}?mode=export"
    )


def format_mm(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def parse_count(raw: Optional[str]) -> int:
    try:
        return max(int(float(raw)), 0)
    except (TypeError, ValueError):
        return 0


class CaptureOrchestrator:
    """Runs export jobs. One browser per job, never shared."""

    def __init__(
        self,
        config: ExportConfig,
        surface_factory: Optional[SurfaceFactory] = None,
        assembler: Optional[DocumentAssembler] = None,
    ):
        if not config.server_url:
            raise ConfigError("server_url is required")
        self.config = config
        self.surface_factory = surface_factory or self._chromium_surface
        self.assembler = assembler or DocumentAssembler()
        wait = config.wait
        self.poller = ReadinessConvergencePoller(
            deadline_ms=wait.convergence_deadline_ms,
            poll_interval_ms=wait.poll_interval_ms,
            render_idle_grace_ms=wait.render_idle_grace_ms,
            render_idle_timeout_ms=wait.render_idle_timeout_ms,
            render_settle_ms=wait.render_settle_ms,
        )

    def _chromium_surface(self, device_scale_factor: float) -> AbstractAsyncContextManager:
        return open_chromium_surface(
            device_scale_factor,
            browser_config=self.config.browser,
            debug_console=self.config.debug_console,
            debug_screenshot_dir=self.config.debug_screenshot_dir,
            debug_screenshot_interval_ms=self.config.debug_screenshot_interval_ms,
        )

    def _idle_detector(self, surface: RenderSurface) -> NetworkIdleDetector:
        wait = self.config.wait
        return NetworkIdleDetector(
            surface,
            first_request_grace_ms=wait.first_request_grace_ms,
            settle_grace_ms=wait.settle_grace_ms,
            hard_timeout_ms=wait.hard_timeout_ms,
            max_inflight_requests=wait.max_inflight_requests,
            label="page load",
        )

    async def _load(self, surface: RenderSurface, url: str) -> None:
        """Navigate and wait for the initial network activity to settle."""
        detector = self._idle_detector(surface)
        detector.start()
        log.info("Navigate to url %s", url)
        try:
            await surface.navigate(url, self.config.browser.navigation_timeout_ms)
        except BaseException:
            detector.close()
            raise
        await detector.wait()
        log.info(
            "Initial load idle after %.0fms (%s requests)", detector.elapsed_ms or 0, detector.requests_seen
        )

    async def capture_dashboard(
        self, job: DashboardExportJob, plan: PageGeometryPlan
    ) -> List[ExportArtifact]:
        """Capture every print-preview page of a dashboard, in page order."""
        url = dashboard_url(self.config.server_url, job)
        log.info(
            "Dashboard export: workspace=%s dashboard=%s principal=%s size=%sx%smm",
            job.workspace_id,
            job.dashboard_id,
            mask_secret(job.auth.principal_id),
            job.page_size.width_mm,
            job.page_size.height_mm,
        )
        log.info("Calculated page parameters: %s", plan)

        async with self.surface_factory(plan.device_scale_factor) as surface:
            log.info(
                "Setting viewport size: %sx%s scale=%s",
                plan.viewport_width_px,
                plan.viewport_height_px,
                plan.device_scale_factor,
            )
            await surface.set_viewport(plan.viewport_width_px, plan.viewport_height_px)
            await surface.set_session_cookies(job.auth.cookies(self.config.server_url))

            tracker = ComputeResultTracker()
            tracker.attach(surface)
            try:
                await self._load(surface, url)
                await self._await_dashboard_ready(surface, tracker)
            finally:
                tracker.detach()

            page_count = await surface.query_element_count(PAGE_SELECTOR)
            log.info("Starting to take screenshots for %s pages", page_count)
            return await self._capture_all(surface, PAGE_SELECTOR, page_count)

    async def _await_dashboard_ready(self, surface: RenderSurface, tracker: ComputeResultTracker) -> None:
        selector_timeout = self.config.wait.selector_timeout_ms
        log.info("Waiting for %s and %s elements", HOST_SELECTOR, PAGE_SELECTOR)
        await surface.wait_for_selector(HOST_SELECTOR, selector_timeout)
        await surface.wait_for_selector(PAGE_SELECTOR, selector_timeout)

        attrs = await surface.query_attributes(
            HOST_SELECTOR, [TOTAL_WIDGETS_ATTR, SHEET_WIDGETS_ATTR, PAGE_COUNT_ATTR]
        )
        expected_widgets = parse_count(attrs.get(TOTAL_WIDGETS_ATTR))
        expected_sheet_widgets = parse_count(attrs.get(SHEET_WIDGETS_ATTR))
        expected_pages = parse_count(attrs.get(PAGE_COUNT_ATTR))
        log.info(
            "Expecting widgets=%s sheet_widgets=%s pages=%s",
            expected_widgets,
            expected_sheet_widgets,
            expected_pages,
        )

        def counter(selector: str):
            async def sample() -> int:
                return await surface.query_element_count(selector)

            return sample

        targets = [
            ConvergenceTarget("widgets", expected_widgets, counter(WIDGET_SELECTOR)),
            ConvergenceTarget("sheet_widgets", expected_sheet_widgets, counter(SHEET_WIDGET_SELECTOR)),
            ConvergenceTarget("pages", expected_pages, counter(PAGE_SELECTOR)),
            ConvergenceTarget("computed_results", expected_sheet_widgets, tracker.count),
        ]
        await self.poller.await_ready(targets, surface)

    async def _capture_all(self, surface: RenderSurface, selector: str, count: int) -> List[ExportArtifact]:
        artifacts: List[ExportArtifact] = []
        try:
            for index in range(count):
                data = await surface.capture_region(selector, index)
                artifacts.append(self._store(index, data))
        except BaseException:
            discard(artifacts)
            raise
        if not artifacts:
            raise CaptureError(f"No {selector} elements to capture")
        return artifacts

    def _store(self, index: int, data: bytes) -> ExportArtifact:
        path = self.config.output_dir / f"{uuid.uuid4()}.jpg"
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise CaptureError(f"Failed to save page {index} to {path}: {exc}") from exc
        return ExportArtifact(sequence_index=index, path=path, format="jpeg")

    async def export_dashboard(self, job: DashboardExportJob) -> Path:
        """Capture a dashboard and assemble it into a PDF. Returns the PDF path."""
        t0 = time.perf_counter()
        plan = plan_page(job.page_size, self.config.padding_mm)
        artifacts = await self.capture_dashboard(job, plan)
        log.info("Screenshots taken: %s", [str(a.path) for a in artifacts])
        try:
            pdf_path = self.config.output_dir / f"{uuid.uuid4()}.pdf"
            self.assembler.assemble_to_file(artifacts, plan, pdf_path)
        finally:
            if not self.config.keep_images:
                discard(artifacts)
        log.info("Dashboard exported to %s in %.2fs", pdf_path, time.perf_counter() - t0)
        return pdf_path

    async def export_chart(self, job: ChartExportJob) -> Path:
        """Capture a single chart view as a JPEG. Returns the image path."""
        t0 = time.perf_counter()
        url = chart_url(self.config.server_url, job)
        log.info(
            "Chart export: workspace=%s sheet=%s layout=%s principal=%s",
            job.workspace_id,
            job.sheet_id,
            job.layout_id,
            mask_secret(job.auth.principal_id),
        )
        async with self.surface_factory(DEVICE_SCALE_FACTOR) as surface:
            await surface.set_viewport(VIEWPORT_LARGER_SIDE, VIEWPORT_SMALLER_SIDE)
            await surface.set_session_cookies(job.auth.cookies(self.config.server_url))
            await self._load(surface, url)
            log.info("Waiting for DOM element: %s", CHART_SELECTOR)
            await surface.wait_for_selector(CHART_SELECTOR, self.config.wait.selector_timeout_ms)
            artifacts = await self._capture_all(surface, CHART_SELECTOR, 1)
        log.info("Chart exported to %s in %.2fs", artifacts[0].path, time.perf_counter() - t0)
        return artifacts[0].path


def discard(artifacts: List[ExportArtifact]) -> None:
    for artifact in artifacts:
        if artifact.path is not None:
            artifact.path.unlink(missing_ok=True)


async def export_dashboard(config: ExportConfig, job: DashboardExportJob, **kwargs) -> Path:
    return await CaptureOrchestrator(config, **kwargs).export_dashboard(job)


async def export_chart(config: ExportConfig, job: ChartExportJob, **kwargs) -> Path:
    return await CaptureOrchestrator(config, **kwargs).export_chart(job)
