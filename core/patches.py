# core/patches.py – Patch-grid sampling on a rectified single-channel chart

from __future__ import annotations

from typing import List

import numpy as np

from core.bayer import Channel
from core.models import PatchAnalysisResult

__all__ = ["analyze_patches", "SATURATION_PROXY", "MAX_SATURATION_RATIO"]

SATURATION_PROXY = 0.9
MAX_SATURATION_RATIO = 0.01


def _cell_bounds(index: int, cell: float, ratio: float) -> tuple[int, int]:
    lo = (index + (1.0 - ratio) / 2.0) * cell
    hi = (index + (1.0 + ratio) / 2.0) * cell
    return int(np.floor(lo + 0.5)), int(np.floor(hi + 0.5))


def analyze_patches(
    image: np.ndarray,
    rows: int,
    cols: int,
    patch_ratio: float,
    min_snr_db: float,
    black_level: float,
    *,
    create_overlay: bool = False,
    saturation_proxy: float = SATURATION_PROXY,
    channel: Channel = Channel.G1,
) -> PatchAnalysisResult:
    """Measure mean and noise of every grid cell and keep the usable ones.

    Parameters
    ----------
    image:
        Rectified, normalized plane (saturation at 1.0).
    rows, cols:
        Chart grid dimensions.
    patch_ratio:
        Fraction of each cell's width/height that is sampled, centred.
    min_snr_db:
        Patches with ``20*log10(S/N)`` below this are rejected.
    black_level:
        Calibrated black level in DN; only used by the flat-block guard.

    Returns
    -------
    PatchAnalysisResult
        Accepted ``(S, N)`` pairs in row-major cell order.
    """
    if rows < 1 or cols < 1:
        raise ValueError("grid needs at least one row and one column")
    if not 0.0 < patch_ratio <= 1.0:
        raise ValueError("patch_ratio must be in (0, 1]")
    h, w = image.shape
    cell_w = w / cols
    cell_h = h / rows

    signal: List[float] = []
    noise: List[float] = []
    max_s = 0.0
    overlay = image.astype(np.float32, copy=True) if create_overlay else None

    for j in range(rows):
        y0, y1 = _cell_bounds(j, cell_h, patch_ratio)
        for i in range(cols):
            x0, x1 = _cell_bounds(i, cell_w, patch_ratio)
            if x0 < 0 or y0 < 0 or x1 > w or y1 > h:
                continue
            if (x1 - x0) * (y1 - y0) < 2:
                continue
            roi = image[y0:y1, x0:x1]
            s = float(roi.mean())
            n = float(roi.std(ddof=1))
            sat_ratio = np.count_nonzero(roi > saturation_proxy) / roi.size

            if not (s > 0 and n > 0):
                continue
            if black_level == 0 and n == 0:
                continue
            if 20.0 * np.log10(s / n) < min_snr_db or sat_ratio >= MAX_SATURATION_RATIO:
                continue

            signal.append(s)
            noise.append(n)
            max_s = max(max_s, s)
            if overlay is not None:
                overlay[y0, x0:x1] = 1.0
                overlay[y1 - 1, x0:x1] = 1.0
                overlay[y0:y1, x0] = 1.0
                overlay[y0:y1, x1 - 1] = 1.0

    return PatchAnalysisResult(
        signal=np.asarray(signal, dtype=np.float64),
        noise=np.asarray(noise, dtype=np.float64),
        channels=[Channel(channel)] * len(signal),
        max_pixel_value=max_s,
        overlay=overlay,
    )
