"""
PDF assembly: one page per captured image, in capture order.
"""

import io
import logging
import os
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence, Tuple

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .errors import AssemblyError
from .geometry import PageGeometryPlan
from .models import ExportArtifact

log = logging.getLogger(__name__)


class DocumentWriter(Protocol):
    def add_page(self, size_pt: Tuple[float, float], margin_pt: float) -> None:
        ...

    def place_image(self, data: bytes, fit_box: Tuple[float, float], align: str = "center") -> None:
        ...

    def finalize(self) -> bytes:
        ...


def fit_within(
    image_width: float, image_height: float, box_width: float, box_height: float
) -> Tuple[float, float, float, float]:
    """Scale an image into a box keeping its aspect ratio, centered.

    Returns (x, y, width, height) relative to the box origin.
    """
    scale = min(box_width / image_width, box_height / image_height)
    width = image_width * scale
    height = image_height * scale
    return (box_width - width) / 2, (box_height - height) / 2, width, height


class ReportLabWriter:
    def __init__(self):
        self._buffer = io.BytesIO()
        self._canvas = canvas.Canvas(self._buffer)
        self._page_size: Optional[Tuple[float, float]] = None
        self._margin_pt = 0.0
        self.page_count = 0

    def add_page(self, size_pt: Tuple[float, float], margin_pt: float) -> None:
        if self._page_size is not None:
            self._canvas.showPage()
        self._canvas.setPageSize(size_pt)
        self._page_size = size_pt
        self._margin_pt = margin_pt
        self.page_count += 1

    def place_image(self, data: bytes, fit_box: Tuple[float, float], align: str = "center") -> None:
        if self._page_size is None:
            raise AssemblyError("place_image called before add_page")
        if align != "center":
            raise ValueError(f"Unsupported alignment {align!r}")
        reader = ImageReader(io.BytesIO(data))
        image_width, image_height = reader.getSize()
        box_width, box_height = fit_box
        x, y, width, height = fit_within(image_width, image_height, box_width, box_height)
        # The fit box starts at the page margin.
        self._canvas.drawImage(reader, self._margin_pt + x, self._margin_pt + y, width=width, height=height)

    def finalize(self) -> bytes:
        if self._page_size is not None:
            self._canvas.showPage()
        self._canvas.save()
        return self._buffer.getvalue()


class DocumentAssembler:
    def __init__(self, writer_factory: Callable[[], DocumentWriter] = ReportLabWriter):
        self.writer_factory = writer_factory

    def assemble(self, artifacts: Sequence[ExportArtifact], plan: PageGeometryPlan) -> bytes:
        """Build the PDF in memory. Input order is page order."""
        if not artifacts:
            raise AssemblyError("No captured pages to assemble")

        images = [self._load(artifact) for artifact in artifacts]

        log.info("Adding %s pages with images to PDF document", len(images))
        try:
            writer = self.writer_factory()
            for data in images:
                writer.add_page(plan.page_size_pt, plan.padding_pt)
                writer.place_image(data, plan.content_size_pt, align="center")
            document = writer.finalize()
        except AssemblyError:
            raise
        except (OSError, ValueError) as exc:
            raise AssemblyError(f"Failed to build PDF document: {exc}") from exc
        log.info("Finished generating PDF document (%s bytes)", len(document))
        return document

    def assemble_to_file(
        self, artifacts: Sequence[ExportArtifact], plan: PageGeometryPlan, path: Path
    ) -> Path:
        """Write the PDF to ``path``; nothing is left behind on failure."""
        document = self.assemble(artifacts, plan)
        partial = path.with_name(path.name + ".part")
        try:
            partial.write_bytes(document)
            os.replace(partial, path)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise AssemblyError(f"Failed to write {path}: {exc}") from exc
        return path

    @staticmethod
    def _load(artifact: ExportArtifact) -> bytes:
        try:
            data = artifact.read_bytes()
            with Image.open(io.BytesIO(data)) as image:
                image.verify()
        except (OSError, SyntaxError, ValueError) as exc:
            raise AssemblyError(
                f"Captured page {artifact.sequence_index} is unreadable: {exc}"
            ) from exc
        return data
