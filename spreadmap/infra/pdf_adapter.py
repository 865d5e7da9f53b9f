# pdf_adapter.py
from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pymupdf as fitz
from PIL import Image

from spreadmap import constants as C
from spreadmap.domain.models import TextRun, Viewport


class FitzPage:
    """PdfPagePort over a pymupdf page. Coordinates exposed in PDF user space (origin bottom-left)."""

    def __init__(self, page: "fitz.Page"):
        self.raw = page
        self.number = page.number + 1
        r = page.rect
        self.width = float(r.width)
        self.height = float(r.height)

    def text_runs(self) -> List[TextRun]:
        runs: List[TextRun] = []
        data = self.raw.get_text("dict", sort=True)
        for block in data.get("blocks", []):
            if block.get("type", 0) != 0:  # image blocks
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text.strip():
                        continue
                    x0, y0, x1, y1 = span["bbox"]
                    size = float(span.get("size") or (y1 - y0))
                    # baseline at the bottom edge of the span box, flipped to bottom-left origin
                    runs.append(TextRun(
                        text=text,
                        transform=(size, 0.0, 0.0, size, float(x0), self.height - float(y1)),
                        width=float(x1 - x0),
                        height=float(y1 - y0),
                    ))
        return runs


class FitzDocument:
    def __init__(self, doc: "fitz.Document"):
        self.raw = doc
        self.page_count = doc.page_count

    def get_page(self, number: int) -> FitzPage:
        if number < 1 or number > self.page_count:
            raise IndexError(f"Page {number} out of range 1..{self.page_count}")
        return FitzPage(self.raw[number - 1])

    def close(self) -> None:
        self.raw.close()


def fit_render_scale(page_width: float, page_height: float,
                     max_width: float = 1100, max_height: float = 850) -> float:
    """Scale that fits a page inside the preview box, clamped to the supported range."""
    scale_w = min(max_width, page_width) / page_width
    scale_h = min(max_height, page_height) / page_height
    return max(C.MIN_RENDER_SCALE, min(C.MAX_RENDER_SCALE, scale_w, scale_h))


class PdfAdapter:
    @contextmanager
    def open(self, path: str | Path):
        doc = fitz.open(str(path), filetype="pdf")
        try:
            if not doc.is_pdf:
                raise ValueError("Not a valid PDF")
            yield FitzDocument(doc)
        finally:
            doc.close()

    def open_bytes(self, data: bytes) -> FitzDocument:
        doc = fitz.open(stream=data, filetype="pdf")
        if not doc.is_pdf:
            doc.close()
            raise ValueError("Not a valid PDF")
        return FitzDocument(doc)

    def viewport(self, page: FitzPage, scale: float = 1.0, dpr: float = 1.0) -> Viewport:
        return Viewport(scale=scale, page_width=page.width, page_height=page.height, device_pixel_ratio=dpr)

    def render_bitmap(self, page: FitzPage, scale: Optional[float] = None,
                      dpr: Optional[float] = None) -> Tuple[np.ndarray, Viewport]:
        """
        Rasterize a page at scale*dpr. Returns an RGB array (H, W, 3) and the CSS-pixel viewport.
        """
        scale = scale or C.RENDER_SCALE
        dpr = dpr or C.DEVICE_PIXEL_RATIO
        vp = self.viewport(page, scale, dpr)
        zoom = scale * dpr
        pix = page.raw.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        try:
            img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
            return np.asarray(img), vp
        finally:
            del pix
