# core/geometry.py – Projective (keystone) correction and chart-corner helpers

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
from scipy import linalg

__all__ = [
    "Point",
    "calculate_keystone_params",
    "undo_keystone",
    "order_corners",
    "bounding_rectangle",
    "polygon_area",
]

Point = Tuple[float, float]

_EPS = 1e-6


def calculate_keystone_params(
    src: Sequence[Point], dst: Sequence[Point]
) -> np.ndarray:
    """Return the 8 parameters mapping destination pixels back to the source.

    For each corner pair the parameters satisfy::

        xu = (k0*xd + k1*yd + k2) / (k6*xd + k7*yd + 1)
        yu = (k3*xd + k4*yd + k5) / (k6*xd + k7*yd + 1)

    with ``(xu, yu)`` in ``src`` and ``(xd, yd)`` in ``dst``.
    """
    if len(src) != 4 or len(dst) != 4:
        raise ValueError("keystone needs exactly four point pairs")
    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i, ((xu, yu), (xd, yd)) in enumerate(zip(src, dst)):
        a[2 * i] = [xd, yd, 1.0, 0.0, 0.0, 0.0, -xd * xu, -yd * xu]
        a[2 * i + 1] = [0.0, 0.0, 0.0, xd, yd, 1.0, -xd * yu, -yd * yu]
        b[2 * i] = xu
        b[2 * i + 1] = yu
    # column equilibration keeps the pixel-scale system well conditioned
    scale = np.linalg.norm(a, axis=0)
    scale[scale == 0] = 1.0
    z, _, _, _ = linalg.lstsq(a / scale, b, lapack_driver="gelsd")
    return np.asarray(z / scale, dtype=np.float64)


def undo_keystone(image: np.ndarray, k: Sequence[float]) -> np.ndarray:
    """Resample ``image`` through ``k`` with nearest-neighbour lookup.

    Output has the input's shape; pixels whose source falls outside the
    image stay zero.
    """
    k = np.asarray(k, dtype=np.float64)
    h, w = image.shape
    yd, xd = np.mgrid[0:h, 0:w].astype(np.float64)
    denom = k[6] * xd + k[7] * yd + 1.0
    xu = (k[0] * xd + k[1] * yd + k[2]) / denom
    yu = (k[3] * xd + k[4] * yd + k[5]) / denom
    xi = np.floor(xu + 0.5)
    yi = np.floor(yu + 0.5)
    inside = (xi >= 0) & (xi < w) & (yi >= 0) & (yi < h)
    out = np.zeros_like(image)
    out[inside] = image[yi[inside].astype(np.intp), xi[inside].astype(np.intp)]
    return out


def order_corners(points: Sequence[Point]) -> List[Point]:
    """Return ``points`` as TL, BL, BR, TR.

    TL has the smallest x+y and BR the largest. Of the two points left,
    BL is the one with the smaller x/(y+eps) and TR the other one; equal
    keys keep input order.
    """
    pts = [(float(x), float(y)) for x, y in points]
    if len(pts) != 4:
        raise ValueError("exactly four corners are required")
    sums = [x + y for x, y in pts]
    tl = int(np.argmin(sums))
    br = int(np.argmax(sums))
    if tl == br:
        raise ValueError("corner points are degenerate")
    rest = [i for i in range(4) if i not in (tl, br)]
    ratios = [pts[i][0] / (pts[i][1] + _EPS) for i in rest]
    bl, tr = (rest[0], rest[1]) if ratios[0] <= ratios[1] else (rest[1], rest[0])
    return [pts[tl], pts[bl], pts[br], pts[tr]]


def bounding_rectangle(points: Sequence[Point]) -> List[Point]:
    """Axis-aligned bounding rectangle of ``points`` as TL, BL, BR, TR."""
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    x0, x1, y0, y1 = min(xs), max(xs), min(ys), max(ys)
    return [(x0, y0), (x0, y1), (x1, y1), (x1, y0)]


def polygon_area(points: Sequence[Point]) -> float:
    """Shoelace area of a simple polygon given in order."""
    pts = np.asarray(points, dtype=np.float64)
    x, y = pts[:, 0], pts[:, 1]
    return float(0.5 * abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))
