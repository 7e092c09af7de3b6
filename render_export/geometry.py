"""
Page geometry planning: physical page size -> orientation, content area and
browser viewport.
"""

import math
from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import GeometryError, InvalidGeometryError
from .units import mm_to_point

# Do not place content closer than 13mm to the paper edge (print safety);
# the dashboard print preview uses the same padding.
DEFAULT_PADDING_MM = 15.0

# 16:10 keeps the bottom of widgets inside the viewport. Wider than 1600 px at
# scale 2.5 produces very small text; portrait pages swap the two sides.
VIEWPORT_LARGER_SIDE = 1600
VIEWPORT_SMALLER_SIDE = 1000
DEVICE_SCALE_FACTOR = 2.5

LANDSCAPE = "landscape"
PORTRAIT = "portrait"


@dataclass(frozen=True)
class PageSizeSpec:
    width_mm: float
    height_mm: float

    def __post_init__(self):
        if not all(math.isfinite(side) and side > 0 for side in (self.width_mm, self.height_mm)):
            raise GeometryError(
                f"Page size must be positive and finite, got {self.width_mm}x{self.height_mm}mm"
            )


@dataclass(frozen=True)
class PageGeometryPlan:
    width_mm: float
    height_mm: float
    orientation: str
    padding_mm: float
    content_width_mm: float
    content_height_mm: float
    viewport_width_px: int
    viewport_height_px: int
    device_scale_factor: float

    @property
    def page_size_pt(self) -> Tuple[float, float]:
        return mm_to_point(self.width_mm), mm_to_point(self.height_mm)

    @property
    def content_size_pt(self) -> Tuple[float, float]:
        return mm_to_point(self.content_width_mm), mm_to_point(self.content_height_mm)

    @property
    def padding_pt(self) -> float:
        return mm_to_point(self.padding_mm)

    def viewport(self) -> Dict[str, int]:
        return {"width": self.viewport_width_px, "height": self.viewport_height_px}


def orientation_for(width_mm: float, height_mm: float) -> str:
    return LANDSCAPE if width_mm > height_mm else PORTRAIT


def plan_page(spec: PageSizeSpec, padding_mm: float = DEFAULT_PADDING_MM) -> PageGeometryPlan:
    """Derive the geometry plan for one export job.

    Raises InvalidGeometryError when the padding leaves no content area.
    """
    if not (math.isfinite(padding_mm) and padding_mm >= 0):
        raise InvalidGeometryError(f"Padding must be a non-negative number, got {padding_mm}mm")
    if not padding_mm * 2 < min(spec.width_mm, spec.height_mm):
        raise InvalidGeometryError(
            f"Padding {padding_mm}mm leaves no content area on a "
            f"{spec.width_mm}x{spec.height_mm}mm page"
        )

    orientation = orientation_for(spec.width_mm, spec.height_mm)
    if orientation == LANDSCAPE:
        viewport_width, viewport_height = VIEWPORT_LARGER_SIDE, VIEWPORT_SMALLER_SIDE
    else:
        viewport_width, viewport_height = VIEWPORT_SMALLER_SIDE, VIEWPORT_LARGER_SIDE

    return PageGeometryPlan(
        width_mm=spec.width_mm,
        height_mm=spec.height_mm,
        orientation=orientation,
        padding_mm=padding_mm,
        content_width_mm=spec.width_mm - 2 * padding_mm,
        content_height_mm=spec.height_mm - 2 * padding_mm,
        viewport_width_px=viewport_width,
        viewport_height_px=viewport_height,
        device_scale_factor=DEVICE_SCALE_FACTOR,
    )
