# utils/roi.py – Chart corners from an ImageJ ROI file

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import roifile  # type: ignore

__all__ = ["load_chart_corners"]

Corner = Tuple[float, float]


def _roi_points(r) -> List[Corner]:
    coords = r.coordinates()
    if coords is not None and len(coords) >= 4:
        return [(float(x), float(y)) for x, y in coords[:4]]
    l, t = float(r.left), float(r.top)
    rgt = float(getattr(r, "right", l))
    btm = float(getattr(r, "bottom", t))
    return [(l, t), (l, btm), (rgt, btm), (rgt, t)]


def load_chart_corners(roi_path: Path | str) -> List[float]:
    """ImageJ polygon/rectangle ROI → ``[x1, y1, ..., x4, y4]`` (full resolution)."""
    path = Path(roi_path)
    if not path.exists():
        raise FileNotFoundError(f"ROI file not found: {path}")
    rz = roifile.roiread(str(path))
    if isinstance(rz, list):
        if not rz:
            raise ValueError(f"Invalid ROI file: {path}")
        rz = rz[0]
    pts = _roi_points(rz)
    if len(pts) != 4:
        raise ValueError(f"Chart ROI needs four corners: {path}")
    return [v for p in pts for v in p]
