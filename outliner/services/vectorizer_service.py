from __future__ import annotations
from typing import List, Optional
import logging
import os

import cv2
import numpy as np
import svgwrite
from dotenv import load_dotenv

from outliner.errors import PipelineTimeoutError, VectorizeError
from outliner.models.deadline import Deadline
from outliner.models.pipeline_config import PipelineConfig
from outliner.models.raster_buffer import RasterBuffer

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class VectorizerService:
    """
    Traces dark regions of a (binarized) grayscale buffer into a black-on-white
    SVG outline.

    • cv2.findContours (RETR_CCOMP) → outer boundaries + holes
    • speckle removal by contour area
    • Douglas–Peucker simplification (cv2.approxPolyDP)
    • optional quadratic smoothing through edge midpoints
    """

    FOREGROUND_LEVEL: int = 128  # samples below this are ink

    def __init__(self,
                 timeout_seconds: Optional[float] = None,
                 max_epsilon_px: Optional[float] = None):
        self.timeout_seconds = timeout_seconds or float(os.getenv("VECTORIZE_TIMEOUT_SECONDS", "30"))
        self.max_epsilon_px = max_epsilon_px or float(os.getenv("MAX_SIMPLIFY_EPSILON_PX", "2.0"))

    # ─── Public API ────────────────────────────────────────────────
    def trace(self,
              buffer: RasterBuffer,
              config: PipelineConfig,
              deadline: Optional[Deadline] = None) -> str:
        """
        Return the SVG document as a string. Raises VectorizeError when nothing
        survives tracing and PipelineTimeoutError when the time box runs out;
        never returns a partial document.
        """
        if buffer.channels != 1:
            raise VectorizeError(f"Tracing needs a flattened grayscale buffer, got {buffer.channels} channels")

        trace_deadline = (deadline or Deadline.unbounded()).child(self.timeout_seconds)
        trace_deadline.check("vectorize")

        mask = np.where(buffer.pixels < self.FOREGROUND_LEVEL, 255, 0).astype(np.uint8)
        contours, hierarchy = cv2.findContours(mask, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_NONE)
        if hierarchy is None or not contours:
            raise VectorizeError("No contours found; the image has no dark regions to trace")

        epsilon = config.simplify_tolerance * self.max_epsilon_px
        areas = [abs(cv2.contourArea(c)) for c in contours]
        segments: List[str] = []

        # hierarchy rows: [next, previous, first_child, parent]
        for idx, contour in enumerate(contours):
            if trace_deadline.expired:
                raise PipelineTimeoutError(f"Vectorization exceeded its time box after {idx} contours")

            parent = hierarchy[0][idx][3]
            if parent >= 0 and areas[parent] < config.min_speckle_area:
                continue  # hole inside a dropped speck
            if areas[idx] < config.min_speckle_area:
                continue

            points = self._simplify(contour, epsilon)
            if len(points) < 3:
                continue
            segments.append(self._path_data(points, config.smooth_curves))

        if not segments:
            raise VectorizeError(
                f"All {len(contours)} contours were below the speckle area of {config.min_speckle_area}px²"
            )

        logger.debug(f"Traced {len(segments)} of {len(contours)} contours")
        return self._to_svg(buffer.width, buffer.height, segments)

    # ─── Internal helpers ──────────────────────────────────────────
    @staticmethod
    def _simplify(contour: np.ndarray, epsilon: float) -> np.ndarray:
        if epsilon > 0:
            contour = cv2.approxPolyDP(contour, epsilon, True)
        return contour.reshape(-1, 2)

    @staticmethod
    def _fmt(value: float) -> str:
        text = f"{float(value):.2f}".rstrip("0").rstrip(".")
        return text if text != "-0" else "0"

    @classmethod
    def _path_data(cls, points: np.ndarray, smooth: bool) -> str:
        f = cls._fmt
        if not smooth:
            head = f"M{f(points[0][0])} {f(points[0][1])}"
            body = "".join(f"L{f(x)} {f(y)}" for x, y in points[1:])
            return f"{head}{body}Z"

        # quadratic curves: each vertex is a control point, segment midpoints are on-curve
        n = len(points)
        mids = [((points[i][0] + points[(i + 1) % n][0]) / 2.0,
                 (points[i][1] + points[(i + 1) % n][1]) / 2.0) for i in range(n)]
        parts = [f"M{f(mids[-1][0])} {f(mids[-1][1])}"]
        for i in range(n):
            cx, cy = points[i]
            mx, my = mids[i]
            parts.append(f"Q{f(cx)} {f(cy)} {f(mx)} {f(my)}")
        parts.append("Z")
        return "".join(parts)

    @staticmethod
    def _to_svg(width: int, height: int, segments: List[str]) -> str:
        dwg = svgwrite.Drawing(size=(width, height), viewBox=f"0 0 {width} {height}",
                               profile="full", debug=False)
        dwg.add(dwg.rect(insert=(0, 0), size=(width, height), fill="#ffffff"))
        dwg.add(dwg.path(d=" ".join(segments), fill="#000000", stroke="none", fill_rule="evenodd"))
        return dwg.tostring()
