import pytest

from spreadmap.common.geometry import (
    canvas_pixel_to_pdf_point, from_raster, pad_rect, pdf_point_to_canvas_pixel,
    raster_size, rects_overlap, to_raster, transform_matrix,
)
from spreadmap.domain.models import CanvasRect, PdfRect, Viewport
from spreadmap.errors import InvalidGeometry


@pytest.mark.parametrize("scale,dpr", [(1.0, 1.0), (1.5, 1.0), (0.37, 2.0), (2.0, 3.0)])
def test_pdf_canvas_round_trip(scale, dpr):
    vp = Viewport(scale=scale, page_width=595.0, page_height=842.0, device_pixel_ratio=dpr)
    for r in [PdfRect(0, 0, 595, 842), PdfRect(12.5, 700.25, 80.0, 40.5), PdfRect(300, 1, 0.5, 0.5)]:
        back = canvas_pixel_to_pdf_point(pdf_point_to_canvas_pixel(r, vp), vp)
        assert back.x == pytest.approx(r.x)
        assert back.y == pytest.approx(r.y)
        assert back.width == pytest.approx(r.width)
        assert back.height == pytest.approx(r.height)


def test_y_axis_is_flipped():
    vp = Viewport(scale=2.0, page_width=100.0, page_height=200.0)
    # bottom-left corner region ends up at the bottom of the canvas
    c = pdf_point_to_canvas_pixel(PdfRect(0, 0, 10, 20), vp)
    assert (c.x, c.y, c.width, c.height) == (0, 360, 20, 40)


def test_raster_boundary_only_applies_dpr():
    vp = Viewport(scale=1.0, page_width=100.0, page_height=100.0, device_pixel_ratio=2.0)
    css = CanvasRect(10, 20, 30, 40)
    assert to_raster(css, vp) == CanvasRect(20, 40, 60, 80)
    assert from_raster(to_raster(css, vp), vp) == css
    assert raster_size(vp) == (200, 200)


def test_pad_rect_clamps_to_bounds():
    r = pad_rect(CanvasRect(5, 5, 50, 50), 10, 60, 100)
    assert (r.x, r.y, r.width, r.height) == (0, 0, 60, 65)


def test_pad_rect_rejects_bad_bounds():
    with pytest.raises(InvalidGeometry):
        pad_rect(CanvasRect(0, 0, 1, 1), 5, 0, 10)


def test_invalid_viewport_and_rect():
    with pytest.raises(InvalidGeometry):
        Viewport(scale=0, page_width=10, page_height=10)
    with pytest.raises(InvalidGeometry):
        Viewport(scale=1, page_width=10, page_height=10, device_pixel_ratio=0)
    with pytest.raises(InvalidGeometry):
        PdfRect(0, 0, -1, 5)


def test_overlap_is_strict():
    a = CanvasRect(0, 0, 10, 10)
    assert rects_overlap(a, CanvasRect(5, 5, 10, 10))
    assert not rects_overlap(a, CanvasRect(10, 0, 5, 5))  # touching edge


def test_transform_matrix_applies_right_operand_first():
    scale = (2, 0, 0, 2, 0, 0)
    move = (1, 0, 0, 1, 5, 7)
    assert transform_matrix(scale, move) == (2, 0, 0, 2, 10, 14)
    assert transform_matrix(move, scale) == (2, 0, 0, 2, 5, 7)
