# core/corners.py – Automatic location of the four chart fiducials

from __future__ import annotations

import logging
import math
from typing import List, Optional

import numpy as np

from core.bayer import Channel, extract_channel
from core.geometry import Point, polygon_area
from core.loader import RawFrame
from core.mathkernel import quantile
from core.models import Calibration

__all__ = [
    "detect_chart_corners",
    "attempt_corner_detection",
    "normalize_raw",
    "MINIMUM_CHART_AREA_RATIO",
]

MINIMUM_CHART_AREA_RATIO = 0.30
_FIDUCIAL_RADIUS_RATIO = 0.01


def normalize_raw(image: np.ndarray, calibration: Calibration) -> np.ndarray:
    """``(px - black) / (sat - black)`` as float32."""
    black = calibration.black_level
    span = calibration.saturation_level - black
    return (image.astype(np.float32) - np.float32(black)) / np.float32(span)


def detect_chart_corners(plane: np.ndarray) -> Optional[List[Point]]:
    """Return TL, BL, BR, TR fiducial centres of ``plane`` or ``None``.

    Each quadrant is thresholded at the brightness quantile matching the
    expected area of one fiducial circle (radius 1% of the diagonal); the
    centre is the per-axis median of the pixels above it.
    """
    if plane.ndim != 2 or plane.size == 0:
        return None
    h, w = plane.shape
    hw, hh = w // 2, h // 2
    if hw == 0 or hh == 0:
        return None
    # TL, BL, BR, TR
    sectors = [(0, 0), (0, hh), (hw, hh), (hw, 0)]
    radius = math.hypot(w, h) * _FIDUCIAL_RADIUS_RATIO
    circle_area = math.pi * radius * radius
    quadrant_area = (w / 2.0) * (h / 2.0)
    q = 1.0 - (circle_area / quadrant_area) / 4.0

    points: List[Point] = []
    for x0, y0 in sectors:
        quad = plane[y0 : y0 + hh, x0 : x0 + hw]
        threshold = quantile(np.array(quad, dtype=np.float64).reshape(-1), q)
        ys, xs = np.nonzero(quad > threshold)
        if xs.size == 0:
            logging.warning("No corner circle found in one of the quadrants.")
            return None
        mx = float(np.sort(xs)[xs.size // 2])
        my = float(np.sort(ys)[ys.size // 2])
        points.append((mx + x0, my + y0))
    return points


def attempt_corner_detection(
    frame: RawFrame, calibration: Calibration
) -> Optional[List[Point]]:
    """Detect corners on the G1 plane of ``frame``; ``None`` means use defaults."""
    logging.info("Attempting automatic corner detection on %s", frame.filename)
    norm = normalize_raw(frame.active_image, calibration)
    g1 = np.clip(extract_channel(norm, frame.filter_pattern, Channel.G1), 0.0, None)
    corners = detect_chart_corners(g1)
    if corners is None:
        return None
    ratio = polygon_area(corners) / float(g1.size)
    if ratio < MINIMUM_CHART_AREA_RATIO:
        logging.warning(
            "Automatic corner detection found an area covering only %.1f%% of the "
            "image. This is below the required threshold of %.1f %%. Discarding "
            "detected corners and falling back to defaults.",
            ratio * 100.0,
            MINIMUM_CHART_AREA_RATIO * 100.0,
        )
        return None
    return corners
