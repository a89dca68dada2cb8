# core/chart.py – Chart geometry: source corners, destination rectangle, grid

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from core.geometry import Point, bounding_rectangle, order_corners, polygon_area

__all__ = [
    "ChartProfile",
    "DEFAULT_CORNERS",
    "DEFAULT_ROWS",
    "DEFAULT_COLS",
    "build_chart_profile",
]

# half-resolution TL, BL, BR, TR used when nothing better is available
DEFAULT_CORNERS: Tuple[Point, ...] = ((119.0, 170.0), (99.0, 1687.0), (2515.0, 1679.0), (2473.0, 158.0))
DEFAULT_ROWS = 4
DEFAULT_COLS = 6


@dataclass(frozen=True)
class ChartProfile:
    """Chart placement in half-resolution Bayer-plane coordinates."""

    corner_points: Tuple[Point, ...]
    destination_points: Tuple[Point, ...]
    rows: int
    cols: int
    has_manual_coords: bool = False

    def __post_init__(self) -> None:
        if self.rows < 1 or self.cols < 1:
            raise ValueError("chart grid needs at least one row and one column")
        if len(set(self.corner_points)) != 4:
            raise ValueError("chart corners must be four distinct points")
        (x0, y0), _, (x1, y1), _ = self.destination_points
        if not (x1 > x0 and y1 > y0):
            raise ValueError("chart destination rectangle has no area")

    @property
    def destination_extent(self) -> Tuple[float, float]:
        (x0, y0), _, (x1, y1), _ = self.destination_points
        return x1 - x0, y1 - y0

    @property
    def area(self) -> float:
        return polygon_area(self.corner_points)


def _log_corners(points: Sequence[Point], title: str) -> None:
    tl, bl, br, tr = points
    fmt = lambda p: f"[{int(round(p[0] * 2)):>5}, {int(round(p[1] * 2)):>5} ]"  # noqa: E731
    logging.info(title)
    logging.info("  TL-> %s   %s <-TR", fmt(tl), fmt(tr))
    logging.info("  BL-> %s   %s <-BR", fmt(bl), fmt(br))


def build_chart_profile(
    manual_coords: Optional[Sequence[float]] = None,
    rows: int = DEFAULT_ROWS,
    cols: int = DEFAULT_COLS,
    detected: Optional[Sequence[Point]] = None,
) -> ChartProfile:
    """Choose the chart corners: manual, then detected, then defaults.

    ``manual_coords`` holds eight full-resolution numbers (x1 y1 ... x4 y4) in
    any order; they are halved to Bayer-plane scale and sorted TL, BL, BR, TR.
    ``detected`` corners are already half-resolution and in that order.
    """
    if manual_coords is not None and len(manual_coords) > 0:
        if len(manual_coords) != 8:
            raise ValueError("manual chart coordinates need exactly 8 numbers")
        pts = [
            (float(manual_coords[i]) / 2.0, float(manual_coords[i + 1]) / 2.0)
            for i in range(0, 8, 2)
        ]
        corners: List[Point] = order_corners(pts)
        manual = True
        _log_corners(corners, "Using manually specified coordinates:")
    elif detected is not None:
        corners = [(float(x), float(y)) for x, y in detected]
        manual = False
        _log_corners(corners, "Using automatically detected coordinates:")
    else:
        corners = list(DEFAULT_CORNERS)
        manual = False
        logging.warning(
            "Automatic corner detection failed or was not possible. "
            "Falling back to default coordinates."
        )
        _log_corners(corners, "Using hardcoded default coordinates:")

    return ChartProfile(
        corner_points=tuple(corners),
        destination_points=tuple(bounding_rectangle(corners)),
        rows=int(rows),
        cols=int(cols),
        has_manual_coords=manual,
    )
