from __future__ import annotations
from typing import Any, List, Protocol, Tuple

# (x, y, w, h) in raster pixels
PixelBox = Tuple[int, int, int, int]

class DetectionEnginePort(Protocol):
    """Raster primitives the region detector is built from."""
    def to_gray(self, bitmap: Any) -> Any: ...
    def blur(self, gray: Any, kernel: int) -> Any: ...
    def edges(self, gray: Any, low: int, high: int) -> Any: ...
    def dilate(self, edges: Any, kernel: int, iterations: int) -> Any: ...
    def external_boxes(self, binary: Any) -> List[PixelBox]: ...
