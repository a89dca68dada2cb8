# core/validation.py – Threshold coverage check of the fitted SNR curves

from __future__ import annotations

import logging
from typing import Dict, Sequence, Tuple

import numpy as np

from core.models import SnrCurve

__all__ = ["is_sufficient", "validate_snr_results"]


def is_sufficient(curve: SnrCurve, threshold_db: float) -> bool:
    """True when the sampled SNR range strictly brackets ``threshold_db``."""
    if curve.snr_db.size == 0:
        return False
    return float(np.min(curve.snr_db)) < threshold_db < float(np.max(curve.snr_db))


def validate_snr_results(
    curves: Sequence[SnrCurve],
    thresholds_db: Sequence[float],
    normalization_mpx: float = 0.0,
    warn_threshold_db: float = 12.0,
) -> Dict[Tuple[str, str], Dict[float, bool]]:
    """Return coverage flags per (file, channel) and threshold.

    Every curve is also checked against ``warn_threshold_db``, requested or
    not; only that check logs a warning. Results are never dropped.
    """
    coverage: Dict[Tuple[str, str], Dict[float, bool]] = {}
    for curve in curves:
        flags = {float(t): is_sufficient(curve, float(t)) for t in thresholds_db}
        coverage[(curve.filename, curve.channel.value)] = flags
        if not is_sufficient(curve, warn_threshold_db):
            logging.warning(
                "Warning: insufficient data to calculate %gdB dynamic range at %gMpx "
                "normalization. Test chart may have been over/underexposed for this "
                "ISO. (%s)",
                warn_threshold_db,
                normalization_mpx,
                curve.label,
            )
    return coverage
