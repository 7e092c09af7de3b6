"""Capture rendered dashboards and charts as images and print-ready PDFs.

Public API re-exported here so ``from render_export import X`` works.
"""

from .assembler import DocumentAssembler, DocumentWriter, ReportLabWriter, fit_within
from .config import AuthContext, BrowserConfig, ExportConfig, WaitConfig, mask_secret
from .errors import (
    AssemblyError,
    CaptureError,
    ConfigError,
    ConvergenceTimeoutError,
    GeometryError,
    IdleTimeoutError,
    InvalidGeometryError,
    NavigationError,
    PageQueryError,
    RenderExportError,
)
from .geometry import PageGeometryPlan, PageSizeSpec, plan_page
from .models import ChartExportJob, DashboardExportJob, ExportArtifact
from .network import ComputeResultTracker, IdleState, NetworkIdleDetector, attach_debug_console
from .orchestrator import CaptureOrchestrator, export_chart, export_dashboard
from .readiness import ConvergenceTarget, ReadinessConvergencePoller
from .surface import PlaywrightSurface, RenderSurface, open_chromium_surface
from .units import mm_to_point, mm_to_px, point_to_mm, point_to_px, px_to_mm, px_to_point

__all__ = [
    # Units and geometry
    "mm_to_point",
    "point_to_mm",
    "point_to_px",
    "px_to_point",
    "mm_to_px",
    "px_to_mm",
    "PageSizeSpec",
    "PageGeometryPlan",
    "plan_page",
    # Readiness
    "IdleState",
    "NetworkIdleDetector",
    "ComputeResultTracker",
    "attach_debug_console",
    "ConvergenceTarget",
    "ReadinessConvergencePoller",
    # Browser
    "RenderSurface",
    "PlaywrightSurface",
    "open_chromium_surface",
    # Jobs
    "AuthContext",
    "BrowserConfig",
    "WaitConfig",
    "ExportConfig",
    "mask_secret",
    "DashboardExportJob",
    "ChartExportJob",
    "ExportArtifact",
    "CaptureOrchestrator",
    "export_dashboard",
    "export_chart",
    # PDF
    "DocumentWriter",
    "ReportLabWriter",
    "DocumentAssembler",
    "fit_within",
    # Errors
    "RenderExportError",
    "ConfigError",
    "GeometryError",
    "InvalidGeometryError",
    "NavigationError",
    "PageQueryError",
    "IdleTimeoutError",
    "ConvergenceTimeoutError",
    "CaptureError",
    "AssemblyError",
]
