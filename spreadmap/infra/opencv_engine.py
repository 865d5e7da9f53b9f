from __future__ import annotations
from typing import Any, List

import cv2
import numpy as np

from spreadmap.ports.detector_port import PixelBox


class OpenCvEngine:
    """DetectionEnginePort backed by OpenCV."""

    def __init__(self):
        # fail early if the native module is broken
        cv2.getBuildInformation()

    def to_gray(self, bitmap: Any) -> np.ndarray:
        arr = np.asarray(bitmap)
        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        if arr.ndim == 2:
            return arr
        if arr.ndim == 3 and arr.shape[2] == 4:
            return cv2.cvtColor(arr, cv2.COLOR_RGBA2GRAY)
        if arr.ndim == 3 and arr.shape[2] == 3:
            return cv2.cvtColor(arr, cv2.COLOR_RGB2GRAY)
        raise ValueError(f"Unsupported bitmap shape {arr.shape}")

    def blur(self, gray: np.ndarray, kernel: int) -> np.ndarray:
        return cv2.GaussianBlur(gray, (kernel, kernel), 0)

    def edges(self, gray: np.ndarray, low: int, high: int) -> np.ndarray:
        return cv2.Canny(gray, low, high)

    def dilate(self, edges: np.ndarray, kernel: int, iterations: int) -> np.ndarray:
        if iterations <= 0:
            return edges
        return cv2.dilate(edges, np.ones((kernel, kernel), np.uint8), iterations=iterations)

    def external_boxes(self, binary: np.ndarray) -> List[PixelBox]:
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        return [tuple(int(v) for v in cv2.boundingRect(c)) for c in contours]
