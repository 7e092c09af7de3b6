"""
Command line entry point.

Usage:
    python -m render_export --workspace 1 --principal p dashboard --dashboard 42 --width 297 --height 210
    python -m render_export --workspace 1 --principal p chart --sheet 7 --layout 3

Job parameters default to RENDER_EXPORT_* environment variables; export
settings (server url, output dir, padding, browser and wait options) are
read by ExportConfig. On success the path of the produced file is printed
to stdout.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import AuthContext, ExportConfig, mask_secret
from .errors import ConfigError, RenderExportError, describe_error
from .geometry import PageSizeSpec
from .logging_setup import resolve_level, setup_logging
from .models import ChartExportJob, DashboardExportJob
from .orchestrator import CaptureOrchestrator

log = logging.getLogger(__name__)


def env(name: str) -> Optional[str]:
    return os.environ.get("RENDER_EXPORT_" + name) or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="render_export",
        description="Capture rendered dashboards and charts as images and PDF documents",
    )
    parser.add_argument("--server-url", help="Application base URL (RENDER_EXPORT_SERVER_URL)")
    parser.add_argument("--output", "-o", help="Output directory (RENDER_EXPORT_OUTPUT_DIR)")
    parser.add_argument("--principal", default=env("PRINCIPAL_ID"), help="Principal id for the session cookie")
    parser.add_argument("--api-key", default=env("API_KEY"), help="API key for the session cookie")
    parser.add_argument("--cookie-domain", default=env("COOKIE_DOMAIN"), help="Cookie domain (default: server host)")
    parser.add_argument("--workspace", default=env("WORKSPACE_ID"), help="Workspace id")
    parser.add_argument("--log-level", default=env("LOG_LEVEL"), help="info, debug, warning")
    parser.add_argument("--log-dir", default=env("LOG_DIR"), help="Directory for the rotated log file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument(
        "--debug-console",
        action="store_true",
        help="Log browser console output and network responses at debug level",
    )
    parser.add_argument(
        "--debug-screenshots",
        metavar="DIR",
        help="Save a full-page screenshot to DIR periodically while the job runs",
    )
    parser.add_argument("--keep-images", action="store_true", help="Keep page screenshots after building the PDF")

    sub = parser.add_subparsers(dest="command", required=True)

    dashboard = sub.add_parser("dashboard", help="Export a dashboard to PDF")
    dashboard.add_argument("--dashboard", default=env("DASHBOARD_ID"), help="Dashboard id")
    dashboard.add_argument("--width", type=float, default=env("FORMAT_WIDTH"), help="Page width in mm")
    dashboard.add_argument("--height", type=float, default=env("FORMAT_HEIGHT"), help="Page height in mm")
    dashboard.add_argument("--padding", type=float, help="Page padding in mm (RENDER_EXPORT_PADDING_MM)")

    chart = sub.add_parser("chart", help="Export a chart view to JPEG")
    chart.add_argument("--sheet", default=env("SHEET_ID"), help="Sheet id")
    chart.add_argument("--layout", default=env("LAYOUT_ID"), help="Layout (view) id")
    return parser


def require(args: argparse.Namespace, *names: str) -> None:
    missing = [name for name in names if getattr(args, name, None) in (None, "")]
    if missing:
        raise ConfigError(
            "Missing required parameters: " + ", ".join("--" + n.replace("_", "-") for n in missing)
        )


def build_config(args: argparse.Namespace) -> ExportConfig:
    return ExportConfig.from_env(
        server_url=args.server_url,
        output_dir=args.output,
        padding_mm=getattr(args, "padding", None),
        keep_images=args.keep_images or None,
        debug_console=args.debug_console or None,
        debug_screenshot_dir=args.debug_screenshots,
    )


async def run(args: argparse.Namespace) -> Path:
    require(args, "workspace", "principal")
    config = build_config(args)
    if not config.server_url:
        raise ConfigError("Missing required parameters: --server-url (or RENDER_EXPORT_SERVER_URL)")
    auth = AuthContext(principal_id=args.principal, api_key=args.api_key, cookie_domain=args.cookie_domain)
    log.info(
        "Have parameters: server=%s workspace=%s principal=%s api_key=%s",
        config.server_url,
        args.workspace,
        mask_secret(args.principal),
        mask_secret(args.api_key),
    )
    orchestrator = CaptureOrchestrator(config)

    if args.command == "dashboard":
        require(args, "dashboard", "width", "height")
        page_size = PageSizeSpec(width_mm=args.width, height_mm=args.height)
        job = DashboardExportJob(
            workspace_id=args.workspace, dashboard_id=args.dashboard, page_size=page_size, auth=auth
        )
        return await orchestrator.export_dashboard(job)

    require(args, "sheet", "layout")
    job = ChartExportJob(workspace_id=args.workspace, sheet_id=args.sheet, layout_id=args.layout, auth=auth)
    return await orchestrator.export_chart(job)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        resolve_level(args.log_level, verbose=args.verbose),
        Path(args.log_dir) if args.log_dir else None,
    )

    try:
        result = asyncio.run(run(args))
    except RenderExportError as exc:
        log.error("Export failed at stage %s: %s", exc.stage, describe_error(exc))
        return 1

    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
