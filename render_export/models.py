"""Job parameters and capture results."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import AuthContext
from .geometry import PageSizeSpec


@dataclass(frozen=True)
class DashboardExportJob:
    workspace_id: str
    dashboard_id: str
    page_size: PageSizeSpec
    auth: AuthContext


@dataclass(frozen=True)
class ChartExportJob:
    workspace_id: str
    sheet_id: str
    layout_id: str
    auth: AuthContext


@dataclass(frozen=True)
class ExportArtifact:
    """One captured page. Holds either a file path or the image bytes."""

    sequence_index: int
    path: Optional[Path] = None
    data: Optional[bytes] = None
    format: str = "jpeg"

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"Artifact {self.sequence_index} has neither a path nor data")
        return self.path.read_bytes()
