"""
Unit conversion between millimeters, PostScript points and CSS pixels.

1 inch = 25.4 mm = 72 pt = 96 px.
"""

MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0
PIXELS_PER_INCH = 96.0


def mm_to_point(value: float) -> float:
    return value * POINTS_PER_INCH / MM_PER_INCH


def point_to_mm(value: float) -> float:
    return value * MM_PER_INCH / POINTS_PER_INCH


def point_to_px(value: float) -> float:
    return value * PIXELS_PER_INCH / POINTS_PER_INCH


def px_to_point(value: float) -> float:
    return value * POINTS_PER_INCH / PIXELS_PER_INCH


def mm_to_px(value: float) -> float:
    return value * PIXELS_PER_INCH / MM_PER_INCH


def px_to_mm(value: float) -> float:
    return value * MM_PER_INCH / PIXELS_PER_INCH
