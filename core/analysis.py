# core/analysis.py – SNR curves, dynamic range and per-frame analysis

from __future__ import annotations

import logging
import math
import threading
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from core.bayer import Channel, extract_channel
from core.chart import ChartProfile
from core.corners import normalize_raw
from core.geometry import undo_keystone
from core.loader import RawFrame
from core.mathkernel import eval_poly, poly_fit
from core.models import (
    Calibration,
    DynamicRangeResult,
    FrameResult,
    PatchAnalysisResult,
    SnrCurve,
)
from core.options import AnalysisOptions
from core.patches import analyze_patches

__all__ = [
    "FrameAnalysisError",
    "STRICT_MIN_SNR_DB",
    "PERMISSIVE_MIN_SNR_DB",
    "normalization_factor",
    "calculate_snr_curve",
    "calculate_dynamic_range",
    "prepare_chart_image",
    "perform_two_pass_patch_analysis",
    "pool_channels",
    "create_debug_image",
    "analyze_frame",
]

STRICT_MIN_SNR_DB = -10.0
PERMISSIVE_MIN_SNR_DB = -90.0


class FrameAnalysisError(RuntimeError):
    """One frame cannot be analysed (bad crop, no usable patches)."""


# ───────────────────────────── curve calculator


def normalization_factor(sensor_mpx: float, target_mpx: float) -> float:
    """``sqrt(sensor/target)`` or 1 when either value is non-positive."""
    if sensor_mpx > 0 and target_mpx > 0:
        return math.sqrt(sensor_mpx / target_mpx)
    return 1.0


def calculate_snr_curve(
    signal: Sequence[float],
    noise: Sequence[float],
    poly_order: int,
    sensor_mpx: float = 0.0,
    target_mpx: float = 0.0,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return ``(signal_ev, snr_db, coeffs)`` with ``EV = f(SNR_dB)`` fitted.

    The resolution normalization is applied here and nowhere else.
    """
    s = np.asarray(signal, dtype=np.float64)
    n = np.asarray(noise, dtype=np.float64)
    keep = (s > 0) & (n > 0)
    s, n = s[keep], n[keep]
    snr_lin = (s / n) * normalization_factor(sensor_mpx, target_mpx)
    signal_ev = np.log2(s)
    snr_db = 20.0 * np.log10(snr_lin)
    coeffs = poly_fit(snr_db, signal_ev, poly_order)
    return signal_ev, snr_db, coeffs


def calculate_dynamic_range(
    coeffs: Sequence[float], thresholds_db: Sequence[float]
) -> Dict[float, float]:
    """DR per threshold as ``-f(t)``; saturation sits at EV 0."""
    return {float(t): float(-eval_poly(coeffs, float(t))) for t in thresholds_db}


# ───────────────────────────── image preparation


def _crop_rect(chart: ChartProfile) -> Tuple[int, int, int, int]:
    (xtl, ytl), _, (xbr, ybr), _ = chart.destination_points
    gap_x = gap_y = 0.0
    if not chart.has_manual_coords:
        gap_x = (xbr - xtl) / (chart.cols + 1) / 2.0
        gap_y = (ybr - ytl) / (chart.rows + 1) / 2.0
    x = int(math.floor(xtl + gap_x + 0.5))
    y = int(math.floor(ytl + gap_y + 0.5))
    w = int(math.floor((xbr - xtl) - 2 * gap_x + 0.5))
    h = int(math.floor((ybr - ytl) - 2 * gap_y + 0.5))
    return x, y, w, h


def prepare_chart_image(
    norm: np.ndarray,
    pattern: str,
    channel: Channel,
    keystone: np.ndarray,
    chart: ChartProfile,
    *,
    name: str = "frame",
) -> np.ndarray:
    """Split ``channel`` out of a normalized mosaic, rectify and crop to the chart."""
    plane = extract_channel(norm, pattern, channel)
    rectified = undo_keystone(plane, keystone)
    x, y, w, h = _crop_rect(chart)
    ph, pw = rectified.shape
    if x < 0 or y < 0 or w <= 0 or h <= 0 or x + w > pw or y + h > ph:
        raise FrameAnalysisError(
            f"Invalid crop area ({x}, {y}, {w}, {h}) for a {pw}x{ph} plane of {name}"
        )
    return rectified[y : y + h, x : x + w]


def perform_two_pass_patch_analysis(
    image: np.ndarray,
    chart: ChartProfile,
    options: AnalysisOptions,
    black_level: float,
    channel: Channel,
    *,
    create_overlay: bool = False,
) -> PatchAnalysisResult:
    """Strict pass first; re-sample permissively when the curve floats too high."""
    factor = normalization_factor(options.sensor_resolution_mpx, options.dr_normalization_mpx)
    norm_adj = 20.0 * math.log10(factor)
    strict = STRICT_MIN_SNR_DB - norm_adj
    permissive = PERMISSIVE_MIN_SNR_DB - norm_adj

    def run(min_snr: float) -> PatchAnalysisResult:
        return analyze_patches(
            image,
            chart.rows,
            chart.cols,
            options.patch_ratio,
            min_snr,
            black_level,
            create_overlay=create_overlay,
            saturation_proxy=options.saturation_proxy,
            channel=channel,
        )

    result = run(strict)
    if result.samples:
        min_snr_found = float(np.min(20.0 * np.log10(result.signal / result.noise)))
        if min_snr_found > options.max_threshold_db:
            logging.info(
                "  - Re-analyzing channel %s with permissive threshold to find low-SNR data.",
                channel.value,
            )
            result = run(permissive)
    if not result.samples:
        logging.warning("No valid patches found for channel: %s", channel.value)
    return result


def pool_channels(
    patches: Mapping[Channel, PatchAnalysisResult], channels: Sequence[Channel]
) -> PatchAnalysisResult:
    """Concatenate patch sets, keeping each sample's origin channel."""
    signal: List[np.ndarray] = []
    noise: List[np.ndarray] = []
    tags: List[Channel] = []
    max_s = 0.0
    for ch in channels:
        res = patches.get(ch)
        if res is None or not res.samples:
            continue
        signal.append(res.signal)
        noise.append(res.noise)
        tags.extend(res.channels)
        max_s = max(max_s, res.max_pixel_value)
    if not signal:
        return PatchAnalysisResult.empty()
    return PatchAnalysisResult(np.concatenate(signal), np.concatenate(noise), tags, max_s)


def create_debug_image(overlay: np.ndarray, max_pixel_value: float) -> Optional[np.ndarray]:
    """Overlay scaled by the brightest patch, clipped and gamma 2.2 encoded."""
    if overlay is None or max_pixel_value <= 0:
        return None
    img = np.clip(overlay / max_pixel_value, 0.0, 1.0)
    return np.power(img, 1.0 / 2.2).astype(np.float32)


# ───────────────────────────── per-frame analyzer


def _build_result(
    frame: RawFrame,
    channel: Channel,
    patches: PatchAnalysisResult,
    options: AnalysisOptions,
    label: str,
) -> Tuple[DynamicRangeResult, SnrCurve]:
    signal_ev, snr_db, coeffs = calculate_snr_curve(
        patches.signal,
        patches.noise,
        options.poly_order,
        options.sensor_resolution_mpx,
        options.dr_normalization_mpx,
    )
    counts = patches.sample_counts()
    dr = DynamicRangeResult(
        filename=frame.filename,
        channel=channel,
        iso=frame.iso_speed,
        dr_values_ev=calculate_dynamic_range(coeffs, options.snr_thresholds_db),
        samples_R=counts[Channel.R],
        samples_G1=counts[Channel.G1],
        samples_G2=counts[Channel.G2],
        samples_B=counts[Channel.B],
    )
    curve = SnrCurve(
        filename=frame.filename,
        channel=channel,
        label=label,
        camera_model=frame.camera_model,
        signal_ev=signal_ev,
        snr_db=snr_db,
        coefficients=coeffs,
        iso=frame.iso_speed,
    )
    return dr, curve


def analyze_frame(
    frame: RawFrame,
    calibration: Calibration,
    chart: ChartProfile,
    keystone: np.ndarray,
    options: AnalysisOptions,
    *,
    label: Optional[str] = None,
    create_debug_image_flag: bool = False,
    cancel: Optional[threading.Event] = None,
) -> FrameResult:
    """Analyse every configured channel of one frame.

    Results come in R, G1, G2, B, AVG order. A cancelled run returns an
    empty :class:`FrameResult`; an unusable frame raises
    :class:`FrameAnalysisError`.
    """
    logging.info('Processing "%s"...', frame.filename)
    base_label = label or frame.path.stem
    sel = options.channels
    min_samples = options.poly_order + 1

    norm = normalize_raw(frame.active_image, calibration)
    patches: Dict[Channel, PatchAnalysisResult] = {}
    for ch in sel.measured:
        if cancel is not None and cancel.is_set():
            return FrameResult()
        image = prepare_chart_image(
            norm, frame.filter_pattern, ch, keystone, chart, name=frame.filename
        )
        patches[ch] = perform_two_pass_patch_analysis(
            image,
            chart,
            options,
            calibration.black_level,
            ch,
            create_overlay=create_debug_image_flag and ch == Channel.R,
        )

    if cancel is not None and cancel.is_set():
        return FrameResult()

    out = FrameResult()
    for ch in sel.selected:
        res = patches.get(ch)
        if res is None or res.samples < min_samples:
            logging.warning(
                "Not enough patches (%d) to fit channel %s of %s",
                0 if res is None else res.samples,
                ch.value,
                frame.filename,
            )
            continue
        dr, curve = _build_result(frame, ch, res, options, f"{base_label} {ch.value}")
        out.dr_results.append(dr)
        out.curves.append(curve)

    if sel.pooled:
        pooled = pool_channels(patches, sel.pooled)
        if pooled.samples >= min_samples:
            # plain file label when the average is the only curve
            avg_label = base_label if not sel.selected else f"{base_label} AVG{sel.avg_label_suffix()}"
            dr, curve = _build_result(frame, Channel.AVG, pooled, options, avg_label)
            out.dr_results.append(dr)
            out.curves.append(curve)
        else:
            logging.warning(
                "Not enough patches (%d) to fit the averaged channel of %s",
                pooled.samples,
                frame.filename,
            )

    red = patches.get(Channel.R)
    if create_debug_image_flag:
        if red is not None and red.overlay is not None:
            out.overlay = create_debug_image(red.overlay, red.max_pixel_value)
            out.max_signal = red.max_pixel_value
        if out.overlay is None:
            logging.warning("Could not generate debug patch image for %s", frame.filename)

    if out.is_empty:
        raise FrameAnalysisError(f"No valid patches found for {frame.filename}")
    return out
