# core/plotting.py – SNR curve plots (matplotlib, Agg backend)

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Sequence
import logging

import matplotlib

matplotlib.use("Agg")  # avoid GUI backend so plotting works inside threads
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure
import numpy as np

from core.mathkernel import eval_poly
from core.models import DynamicRangeResult, SnrCurve
from utils.logger import log_memory_usage

__all__ = [
    "plot_snr_curves_summary",
    "plot_snr_curve_individual",
]

_FIT_POINTS = 200


def _fit_line(curve: SnrCurve) -> tuple[np.ndarray, np.ndarray]:
    """Fitted EV over the sampled SNR range."""
    if curve.snr_db.size == 0:
        return np.empty(0), np.empty(0)
    snr = np.linspace(float(curve.snr_db.min()), float(curve.snr_db.max()), _FIT_POINTS)
    return eval_poly(curve.coefficients, snr), snr


def _draw_curve(ax: Axes, curve: SnrCurve, label: str, color: str = "C0") -> str:
    ax.plot(
        curve.signal_ev,
        curve.snr_db,
        linestyle="None",
        marker="o",
        markersize=3,
        alpha=0.6,
        color=color,
        label="_nolegend_",
    )
    ev, snr = _fit_line(curve)
    ax.plot(ev, snr, linestyle="-", color=color, label=label)
    return color


def _draw_thresholds(ax: Axes, thresholds_db: Sequence[float]) -> None:
    for t in thresholds_db:
        ax.axhline(t, color="r", linestyle="--", linewidth=0.8)
        ax.annotate(
            f"{t:g} dB",
            xy=(0.01, t),
            xycoords=("axes fraction", "data"),
            textcoords="offset points",
            xytext=(0, 2),
            fontsize=8,
            color="r",
        )


def _title(curves: Sequence[SnrCurve]) -> str:
    models = sorted({c.camera_model for c in curves if c.camera_model})
    return "SNR curves" + (f" - {', '.join(models)}" if models else "")


def _finish(fig: Figure, ax: Axes, output_path: Path, return_fig: bool) -> Figure | None:
    ax.set_xlabel("Signal (EV relative to saturation)")
    ax.set_ylabel("SNR (dB)")
    ax.grid(True, which="both", alpha=0.4)
    ax.legend(fontsize=8)
    fig.tight_layout()
    fig.savefig(output_path)
    log_memory_usage("plot end: ")
    if return_fig:
        return fig
    plt.close(fig)
    return None


def plot_snr_curves_summary(
    curves: Sequence[SnrCurve],
    thresholds_db: Sequence[float],
    output_path: Path,
    *,
    dr_results: Optional[Sequence[DynamicRangeResult]] = None,
    return_fig: bool = False,
) -> Figure | None:
    """All curves of a run in one figure, legend sorted by ISO."""
    logging.info("plot_snr_curves_summary: output=%s", output_path)
    log_memory_usage("plot start: ")
    dr_map: Dict[tuple, Dict[float, float]] = {}
    for res in dr_results or ():
        dr_map[(res.filename, res.channel)] = res.dr_values_ev

    fig, ax = plt.subplots(figsize=(10, 6))
    ordered = sorted(curves, key=lambda c: (c.iso, c.filename))
    for idx, curve in enumerate(ordered):
        label = curve.label
        drs = dr_map.get((curve.filename, curve.channel))
        if drs:
            label += " (" + ", ".join(f"{v:.2f} EV@{t:g}dB" for t, v in drs.items()) + ")"
        _draw_curve(ax, curve, label, f"C{idx % 10}")
    _draw_thresholds(ax, thresholds_db)
    ax.set_title(_title(curves))
    return _finish(fig, ax, Path(output_path), return_fig)


def plot_snr_curve_individual(
    curve: SnrCurve,
    thresholds_db: Sequence[float],
    output_path: Path,
    *,
    return_fig: bool = False,
) -> Figure | None:
    """One curve with its DR crossings marked."""
    logging.info("plot_snr_curve_individual: output=%s", output_path)
    fig, ax = plt.subplots()
    color = _draw_curve(ax, curve, curve.label)
    _draw_thresholds(ax, thresholds_db)
    for t in thresholds_db:
        ev = float(eval_poly(curve.coefficients, t))
        ax.plot([ev], [t], marker="x", color=color)
        ax.annotate(
            f"DR={-ev:.2f} EV",
            xy=(ev, t),
            textcoords="offset points",
            xytext=(4, -12),
            fontsize=8,
        )
    ax.set_title(f"{_title([curve])}: {curve.label}")
    return _finish(fig, ax, Path(output_path), return_fig)
