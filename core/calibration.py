# core/calibration.py – Black / saturation level resolution

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from core.loader import RawFrame, RawLoadError, load_raw_frame
from core.mathkernel import mean, quantile
from core.models import Calibration
from core.sorting import FileInfo

__all__ = [
    "CalibrationError",
    "DEFAULT_BLACK_LEVEL",
    "DEFAULT_SATURATION_LEVEL",
    "FALLBACK_BIT_DEPTH",
    "process_dark_frame",
    "process_saturation_frame",
    "estimate_black_level",
    "estimate_saturation_level",
    "resolve_calibration",
]

DEFAULT_BLACK_LEVEL = 256.0
DEFAULT_SATURATION_LEVEL = 4095.0
FALLBACK_BIT_DEPTH = 14
SATURATION_FRAME_QUANTILE = 0.05


class CalibrationError(RuntimeError):
    """A dedicated calibration frame could not be used."""


def _load_calibration_frame(path: Path | str) -> RawFrame:
    try:
        return load_raw_frame(path)
    except RawLoadError as exc:
        raise CalibrationError(str(exc)) from exc


# ───────── dedicated frames


def process_dark_frame(frame: RawFrame | Path | str) -> float:
    """Black level = mean of every pixel of a dark capture."""
    if not isinstance(frame, RawFrame):
        frame = _load_calibration_frame(frame)
    logging.info("Calculating black level from: %s", frame.filename)
    value = mean(frame.raw_image)
    logging.info("Black level obtained (mean): %.2f", value)
    return value


def process_saturation_frame(frame: RawFrame | Path | str) -> float:
    """Saturation level = 5th percentile of an overexposed capture."""
    if not isinstance(frame, RawFrame):
        frame = _load_calibration_frame(frame)
    logging.info("Calculating saturation point from: %s", frame.filename)
    pixels = frame.raw_image.astype(np.float64).reshape(-1)
    value = quantile(pixels, SATURATION_FRAME_QUANTILE)
    logging.info("Saturation point obtained (5th percentile): %.2f", value)
    return value


# ───────── estimation


def estimate_black_level(infos: Sequence[FileInfo]) -> Optional[float]:
    """Nearest power of two to the minimum pixel of the darkest frame."""
    candidates = [i for i in infos if i.frame is not None]
    if not candidates:
        return None
    darkest = min(candidates, key=lambda i: i.mean_brightness)
    logging.info("Selecting '%s' for estimation (it is the darkest image).", darkest.name)
    active = darkest.frame.active_image
    if active.size == 0:
        logging.warning("Could not get active image area to estimate black level.")
        return None
    min_val = float(active.min())
    if min_val <= 1.0:
        logging.warning(
            "Minimum pixel value is too low to reliably estimate black level. Using fallback."
        )
        return DEFAULT_BLACK_LEVEL
    estimated = float(2.0 ** round(math.log2(min_val)))
    logging.info(
        "Minimum pixel value found: %g. Estimated black level: %g", min_val, estimated
    )
    logging.info(
        "NOTE: For maximum accuracy, providing a dedicated dark frame is recommended."
    )
    return estimated


def estimate_saturation_level(infos: Sequence[FileInfo]) -> Optional[float]:
    """``2**bits - 1`` of the highest-ISO frame (14 bits when unknown)."""
    candidates = [i for i in infos if i.frame is not None]
    if not candidates:
        return None
    highest = max(candidates, key=lambda i: i.iso_speed)
    bits = highest.frame.bit_depth
    if bits is None:
        bits = FALLBACK_BIT_DEPTH
        logging.warning(
            "Could not determine bit depth from RAW metadata. Using a default "
            "fallback of %d bits. This value may not be accurate for your camera.",
            bits,
        )
    else:
        logging.info("Estimated from '%s' (highest ISO file, %d bits)", highest.name, bits)
    value = float((1 << bits) - 1)
    logging.info("Estimated saturation level: %g", value)
    return value


# ───────── public api


def resolve_calibration(
    infos: Sequence[FileInfo],
    *,
    dark_value: Optional[float] = None,
    sat_value: Optional[float] = None,
    dark_file: Optional[Path | str] = None,
    sat_file: Optional[Path | str] = None,
) -> Calibration:
    """Resolve both levels: dedicated file, then explicit value, then estimate.

    Only an unreadable dedicated file raises :class:`CalibrationError`.
    """
    if dark_file:
        black = process_dark_frame(dark_file)
    elif dark_value is not None:
        black = float(dark_value)
    else:
        logging.info("Black level not specified. Attempting to estimate from RAW file...")
        black = estimate_black_level(infos)
        if black is None:
            black = DEFAULT_BLACK_LEVEL
            logging.warning(
                "Could not estimate black level. Using fallback default value: %g", black
            )

    if sat_file:
        sat = process_saturation_frame(sat_file)
    elif sat_value is not None:
        sat = float(sat_value)
    else:
        logging.info("Saturation level not specified. Attempting to estimate from RAW file...")
        sat = estimate_saturation_level(infos)
        if sat is None:
            sat = DEFAULT_SATURATION_LEVEL
            logging.warning(
                "Could not estimate saturation level. Using fallback default value: %g", sat
            )

    try:
        return Calibration(black_level=black, saturation_level=sat)
    except ValueError as exc:
        raise CalibrationError(str(exc)) from exc
