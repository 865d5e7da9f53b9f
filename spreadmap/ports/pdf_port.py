from __future__ import annotations
from typing import List, Protocol, Tuple

from spreadmap.domain.models import TextRun

Rect = Tuple[float, float, float, float]

class PdfPagePort(Protocol):
    number: int          # 1-based
    width: float         # points
    height: float        # points

    def text_runs(self) -> List[TextRun]: ...

class PdfDocumentPort(Protocol):
    page_count: int

    def get_page(self, number: int) -> PdfPagePort: ...
    def close(self) -> None: ...

class PdfPort(Protocol):
    def open_bytes(self, data: bytes) -> PdfDocumentPort: ...
