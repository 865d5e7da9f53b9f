from __future__ import annotations
import math
from typing import Sequence

from spreadmap.domain.models import CanvasRect, Matrix, PdfRect, Viewport
from spreadmap.errors import InvalidGeometry


def transform_matrix(m1: Sequence[float], m2: Sequence[float]) -> Matrix:
    """
    Compose two affine matrices [a b c d e f]; the result applies m2 first, then m1.
    """
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def apply_point(m: Sequence[float], x: float, y: float) -> tuple[float, float]:
    a, b, c, d, e, f = m
    return (a * x + c * y + e, b * x + d * y + f)


def pdf_point_to_canvas_pixel(rect: PdfRect, viewport: Viewport) -> CanvasRect:
    """
    PDF points (origin bottom-left) -> canvas CSS pixels (origin top-left).
    """
    x1, y1 = apply_point(viewport.transform, rect.x, rect.y)
    x2, y2 = apply_point(viewport.transform, rect.x + rect.width, rect.y + rect.height)
    return CanvasRect(min(x1, x2), min(y1, y2), abs(x2 - x1), abs(y2 - y1))


def canvas_pixel_to_pdf_point(rect: CanvasRect, viewport: Viewport) -> PdfRect:
    s = viewport.scale
    x1 = rect.x / s
    x2 = (rect.x + rect.width) / s
    y1 = viewport.page_height - rect.y / s
    y2 = viewport.page_height - (rect.y + rect.height) / s
    return PdfRect(min(x1, x2), min(y1, y2), abs(x2 - x1), abs(y2 - y1))


def to_raster(rect: CanvasRect, viewport: Viewport) -> CanvasRect:
    """CSS pixels -> device (bitmap) pixels."""
    r = viewport.device_pixel_ratio
    return CanvasRect(rect.x * r, rect.y * r, rect.width * r, rect.height * r)


def from_raster(rect: CanvasRect, viewport: Viewport) -> CanvasRect:
    """Device (bitmap) pixels -> CSS pixels."""
    r = viewport.device_pixel_ratio
    return CanvasRect(rect.x / r, rect.y / r, rect.width / r, rect.height / r)


def raster_size(viewport: Viewport) -> tuple[int, int]:
    r = viewport.device_pixel_ratio
    return (int(math.floor(viewport.width * r)), int(math.floor(viewport.height * r)))


def pad_rect(rect: CanvasRect, padding_px: float, bounds_w: float, bounds_h: float) -> CanvasRect:
    """
    Grow `rect` by `padding_px` on every side, clamped to [0, bounds_w] x [0, bounds_h].
    """
    if bounds_w <= 0 or bounds_h <= 0:
        raise InvalidGeometry(f"Invalid page bounds {bounds_w} x {bounds_h}")
    pad = max(0.0, float(padding_px))
    x = min(max(0.0, rect.x - pad), bounds_w)
    y = min(max(0.0, rect.y - pad), bounds_h)
    right = min(bounds_w, rect.x + rect.width + pad)
    bottom = min(bounds_h, rect.y + rect.height + pad)
    return CanvasRect(x, y, max(0.0, right - x), max(0.0, bottom - y))


def rects_overlap(a: CanvasRect, b: CanvasRect) -> bool:
    return a.x < b.x + b.width and a.x + a.width > b.x and a.y < b.y + b.height and a.y + a.height > b.y
