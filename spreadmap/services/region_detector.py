# spreadmap/services/region_detector.py
from __future__ import annotations
import logging
import math
from typing import Any, List, Optional, Tuple

import numpy as np

from spreadmap import constants as C
from spreadmap.common.geometry import canvas_pixel_to_pdf_point, from_raster
from spreadmap.domain.models import CanvasRect, DetectedRegion, DetectParams, Viewport
from spreadmap.errors import EngineUnavailable
from spreadmap.ports.detector_port import DetectionEnginePort, PixelBox

logger = logging.getLogger(__name__)


def load_engine() -> DetectionEnginePort:
    try:
        from spreadmap.infra.opencv_engine import OpenCvEngine
        return OpenCvEngine()
    except Exception as e:
        raise EngineUnavailable(f"OpenCV not ready: {type(e).__name__}: {e}") from e


def _accept(box: PixelBox, min_area: int) -> bool:
    _, _, w, h = box
    if w * h < min_area:
        return False
    if w < C.MIN_REGION_PX or h < C.MIN_REGION_PX:
        return False
    if w / h > C.MAX_ASPECT_RATIO or h / w > C.MAX_ASPECT_RATIO:
        return False
    return True


class RegionDetector:
    """
    Finds rectangular tile regions on a rendered page:
    grayscale -> blur -> Canny -> dilate -> external contours -> bounding boxes,
    filtered by area / size / aspect ratio and returned largest first.
    """

    def __init__(self, engine: Optional[DetectionEnginePort] = None):
        self._engine = engine

    @property
    def engine(self) -> DetectionEnginePort:
        if self._engine is None:
            self._engine = load_engine()
        return self._engine

    def detect_pixels(self, bitmap: Any, params: Optional[DetectParams] = None) -> List[PixelBox]:
        params = params or DetectParams()
        eng = self.engine
        arr = np.asarray(bitmap)
        height, width = arr.shape[:2]
        page_area = width * height
        min_area = max(1, int(math.floor((params.min_area_percent / 100.0) * page_area)))

        gray = eng.to_gray(arr)
        blurred = eng.blur(gray, C.BLUR_KERNEL)
        edges = eng.edges(blurred, params.canny_low, params.canny_high)
        closed = eng.dilate(edges, C.DILATE_KERNEL, params.dilate_iterations)
        boxes = [b for b in eng.external_boxes(closed) if _accept(b, min_area)]

        # stable: equal areas keep contour order
        boxes.sort(key=lambda b: -(b[2] * b[3]))
        logger.debug("Detected %d regions on %dx%d bitmap (min area %d px)", len(boxes), width, height, min_area)
        return boxes

    def detect(self, bitmap: Any, viewport: Viewport, params: Optional[DetectParams] = None) -> List[DetectedRegion]:
        regions: List[DetectedRegion] = []
        for x, y, w, h in self.detect_pixels(bitmap, params):
            css = from_raster(CanvasRect(x, y, w, h), viewport)
            rect = canvas_pixel_to_pdf_point(css, viewport)
            regions.append(DetectedRegion(rect=rect, area_pdf=rect.area))
        return regions

    def detect_page(self, page, pdf=None, params: Optional[DetectParams] = None,
                    scale: Optional[float] = None, dpr: Optional[float] = None) -> Tuple[List[DetectedRegion], Viewport]:
        """Render a PDF page and detect regions on it."""
        if pdf is None:
            from spreadmap.infra.pdf_adapter import PdfAdapter
            pdf = PdfAdapter()
        bitmap, viewport = pdf.render_bitmap(page, scale=scale, dpr=dpr)
        return self.detect(bitmap, viewport, params), viewport
