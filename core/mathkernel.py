# core/mathkernel.py – Polynomial least squares and small statistics helpers

from __future__ import annotations

from typing import Sequence

import numpy as np
from scipy import linalg

__all__ = ["poly_fit", "eval_poly", "eval_poly_deriv", "mean", "quantile"]


def poly_fit(x: Sequence[float], y: Sequence[float], order: int) -> np.ndarray:
    """Least-squares polynomial of ``order``.

    Coefficients are returned highest power first (``np.polyval`` order).
    The Vandermonde system is solved through SVD (``gelsd``); there is no
    fallback for rank deficient input.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if order < 0:
        raise ValueError("order must be non-negative")
    if x.shape != y.shape or x.ndim != 1:
        raise ValueError("x and y must be 1-D arrays of equal length")
    if x.size < order + 1:
        raise ValueError(
            f"need at least {order + 1} samples for order {order}, got {x.size}"
        )
    vander = np.vander(x, order + 1)
    scale = np.linalg.norm(vander, axis=0)
    scale[scale == 0] = 1.0
    coeffs, _, _, _ = linalg.lstsq(vander / scale, y, lapack_driver="gelsd")
    return np.asarray(coeffs / scale, dtype=np.float64)


def eval_poly(coeffs: Sequence[float], x):
    """Evaluate polynomial (highest power first) at ``x`` using Horner's rule."""
    return np.polyval(np.asarray(coeffs, dtype=np.float64), x)


def eval_poly_deriv(coeffs: Sequence[float], x):
    """Evaluate the first derivative of the polynomial at ``x``."""
    coeffs = np.asarray(coeffs, dtype=np.float64)
    if coeffs.size <= 1:
        return np.zeros_like(np.asarray(x, dtype=np.float64))
    return np.polyval(np.polyder(coeffs), x)


def mean(values) -> float:
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def quantile(values: np.ndarray, p: float) -> float:
    """Return the element at rank ``floor(p*n)`` (clamped) in linear time.

    ``values`` is partitioned in place when it is a writable ndarray.
    """
    arr = values if isinstance(values, np.ndarray) else np.asarray(values)
    arr = arr.reshape(-1) if arr.ndim != 1 else arr
    n = arr.size
    if n == 0:
        raise ValueError("quantile of an empty sequence")
    k = int(np.floor(p * n))
    k = min(max(k, 0), n - 1)
    if arr.flags.writeable:
        arr.partition(k)
        return float(arr[k])
    return float(np.partition(arr, k)[k])
