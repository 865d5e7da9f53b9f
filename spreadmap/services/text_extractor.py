from __future__ import annotations
from typing import List

from spreadmap.common.geometry import pdf_point_to_canvas_pixel, rects_overlap, transform_matrix
from spreadmap.domain.models import CanvasRect, PdfRect, Viewport
from spreadmap.ports.pdf_port import PdfPagePort


def extract_text_from_rect(page: PdfPagePort, rect: PdfRect) -> str:
    """
    Join the text runs of `page` whose boxes overlap `rect`.

    Runs are placed through a scale-1 viewport, the same space the target rect is
    mapped into, so both sides of the overlap test share a top-left origin.
    """
    vp = Viewport(scale=1.0, page_width=page.width, page_height=page.height)
    target = pdf_point_to_canvas_pixel(rect, vp)
    picked: List[str] = []
    for run in page.text_runs():
        tx = transform_matrix(vp.transform, run.transform)
        w = run.width * vp.scale
        h = run.height * vp.scale
        # tx[5] is the baseline; the glyph box extends upwards from it
        box = CanvasRect(tx[4], tx[5] - h, max(0.0, w), max(0.0, h))
        if rects_overlap(box, target):
            picked.append(run.text)
    return " ".join(picked).strip()
