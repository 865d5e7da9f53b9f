import sys

import cv2
import numpy as np
import pytest

from spreadmap.domain.models import DetectParams, Viewport
from spreadmap.errors import EngineUnavailable
from spreadmap.services import region_detector
from spreadmap.services.region_detector import RegionDetector


class FakeEngine:
    """Passes the bitmap through and returns canned boxes."""
    def __init__(self, boxes):
        self.boxes = boxes
        self.calls = []
    def to_gray(self, bitmap):
        self.calls.append("gray"); return bitmap
    def blur(self, gray, kernel):
        self.calls.append(("blur", kernel)); return gray
    def edges(self, gray, low, high):
        self.calls.append(("edges", low, high)); return gray
    def dilate(self, edges, kernel, iterations):
        self.calls.append(("dilate", kernel, iterations)); return edges
    def external_boxes(self, binary):
        return list(self.boxes)


def _canvas(w=400, h=340):
    return np.full((h, w, 3), 255, dtype=np.uint8)


def test_detects_drawn_rectangles_largest_first():
    img = _canvas()
    cv2.rectangle(img, (20, 20), (150, 120), (0, 0, 0), 2)
    cv2.rectangle(img, (200, 110), (380, 280), (0, 0, 0), 2)
    cv2.line(img, (10, 325), (390, 325), (0, 0, 0), 2)  # too thin to be a region

    vp = Viewport(scale=1.0, page_width=400, page_height=340)
    regions = RegionDetector().detect(img, vp, DetectParams())

    assert len(regions) == 2
    big, small = regions
    assert big.area_pdf > small.area_pdf
    # big box spans canvas y 110..280 -> pdf y 60..230
    assert big.rect.x == pytest.approx(200, abs=6)
    assert big.rect.y == pytest.approx(60, abs=6)
    assert big.rect.width == pytest.approx(180, abs=8)
    assert len({r.rect_id for r in regions}) == 2


def test_every_region_respects_bounds():
    img = _canvas()
    for x in range(0, 400, 45):
        cv2.rectangle(img, (x + 2, 10), (x + 40, 10 + (x % 7) * 15 + 20), (0, 0, 0), 2)
    vp = Viewport(scale=1.0, page_width=400, page_height=340)
    params = DetectParams(min_area_percent=1)
    boxes = RegionDetector().detect_pixels(img, params)
    for _, _, w, h in boxes:
        assert w >= 30 and h >= 30
        assert w * h >= 0.01 * 400 * 340
        assert max(w / h, h / w) <= 10
    assert len(RegionDetector().detect(img, vp, params)) == len(boxes)


def test_filters_and_stable_sort_with_fake_engine():
    boxes = [
        (0, 0, 40, 40),     # 1600
        (0, 0, 29, 200),    # too narrow
        (0, 0, 400, 35),    # aspect > 10
        (10, 10, 50, 32),   # 1600, after the first
        (0, 0, 100, 100),   # biggest
        (0, 0, 5, 5),       # tiny
    ]
    eng = FakeEngine(boxes)
    out = RegionDetector(engine=eng).detect_pixels(np.zeros((100, 100), np.uint8), DetectParams(10, 20, 1, 3))
    assert out == [(0, 0, 100, 100), (0, 0, 40, 40), (10, 10, 50, 32)]
    assert ("edges", 10, 20) in eng.calls and ("dilate", 3, 3) in eng.calls


def test_device_pixel_ratio_applied_once():
    eng = FakeEngine([(0, 0, 100, 80)])
    vp = Viewport(scale=1.0, page_width=200, page_height=300, device_pixel_ratio=2.0)
    (region,) = RegionDetector(engine=eng).detect(np.zeros((600, 400), np.uint8), vp)
    assert (region.rect.x, region.rect.y, region.rect.width, region.rect.height) == (0, 260, 50, 40)


def test_engine_unavailable_is_raised(monkeypatch):
    monkeypatch.setitem(sys.modules, "spreadmap.infra.opencv_engine", None)
    with pytest.raises(EngineUnavailable):
        region_detector.load_engine()
    with pytest.raises(EngineUnavailable):
        RegionDetector().detect_pixels(np.zeros((10, 10), np.uint8))


def test_blank_page_is_empty_not_an_error():
    vp = Viewport(scale=1.0, page_width=400, page_height=340)
    assert RegionDetector().detect(_canvas(), vp) == []
