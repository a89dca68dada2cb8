# core/options.py – Immutable run options built from the merged YAML config

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from numbers import Real
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from core.bayer import CHANNEL_ORDER, Channel, normalize_pattern

__all__ = [
    "AvgMode",
    "ChannelSelection",
    "AnalysisOptions",
    "ConfigError",
    "options_from_config",
]


class ConfigError(ValueError):
    """Malformed configuration value."""


class AvgMode(str, Enum):
    NONE = "none"
    FULL = "full"
    SELECTED = "selected"


@dataclass(frozen=True)
class ChannelSelection:
    R: bool = False
    G1: bool = False
    G2: bool = False
    B: bool = False
    avg_mode: AvgMode = AvgMode.FULL

    @property
    def selected(self) -> Tuple[Channel, ...]:
        return tuple(ch for ch in CHANNEL_ORDER if getattr(self, ch.value))

    @property
    def pooled(self) -> Tuple[Channel, ...]:
        if self.avg_mode == AvgMode.FULL:
            return CHANNEL_ORDER
        if self.avg_mode == AvgMode.SELECTED:
            return self.selected
        return ()

    @property
    def measured(self) -> Tuple[Channel, ...]:
        """Planes that have to be sampled, in canonical order."""
        wanted = set(self.selected) | set(self.pooled)
        return tuple(ch for ch in CHANNEL_ORDER if ch in wanted)

    def avg_label_suffix(self) -> str:
        if self.avg_mode == AvgMode.FULL:
            return " (Full)"
        return " (" + ",".join(ch.value for ch in self.pooled) + ")"


@dataclass(frozen=True)
class AnalysisOptions:
    input_files: Tuple[str, ...] = ()
    dark_value: Optional[float] = None
    sat_value: Optional[float] = None
    dark_file: Optional[str] = None
    sat_file: Optional[str] = None
    chart_coords: Optional[Tuple[float, ...]] = None
    chart_rows: int = 4
    chart_cols: int = 6
    patch_ratio: float = 0.5
    poly_order: int = 3
    dr_normalization_mpx: float = 0.0
    snr_thresholds_db: Tuple[float, ...] = (12.0, 0.0)
    channels: ChannelSelection = field(default_factory=ChannelSelection)
    sensor_resolution_mpx: float = 0.0
    saturation_proxy: float = 0.9
    validation_threshold_db: float = 12.0
    workers: int = 0
    bayer_pattern: str = "RGGB"
    print_patches: bool = False

    def __post_init__(self) -> None:
        _validate(self)

    @property
    def max_threshold_db(self) -> float:
        return max(self.snr_thresholds_db)

    def with_sensor_resolution(self, mpx: float) -> "AnalysisOptions":
        return replace(self, sensor_resolution_mpx=float(mpx))


def _validate(opts: AnalysisOptions) -> None:
    if not opts.snr_thresholds_db:
        raise ConfigError("snr_thresholds_db must list at least one threshold")
    if not 0.0 < opts.patch_ratio <= 1.0:
        raise ConfigError(f"patch_ratio must be in (0, 1], got {opts.patch_ratio}")
    if opts.poly_order not in (2, 3):
        raise ConfigError(f"poly_order must be 2 or 3, got {opts.poly_order}")
    if opts.chart_rows < 1 or opts.chart_cols < 1:
        raise ConfigError("chart patches must be positive")
    if opts.dr_normalization_mpx < 0 or opts.sensor_resolution_mpx < 0:
        raise ConfigError("resolution values must be non-negative")
    if opts.chart_coords is not None and len(opts.chart_coords) != 8:
        raise ConfigError("chart coords need exactly 8 numbers")
    if not opts.channels.selected and opts.channels.avg_mode != AvgMode.FULL:
        raise ConfigError("no channel selected for analysis")


# ───────── config dict → options


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    return float(value)


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Real) or not float(value).is_integer():
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    return int(value)


def _opt_float(value: Any, name: str) -> Optional[float]:
    return None if value is None else _as_float(value, name)


def _thresholds(value: Any) -> Tuple[float, ...]:
    if isinstance(value, Real) and not isinstance(value, bool):
        value = [value]
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigError(f"snr_thresholds_db must be a non-empty list, got {value!r}")
    return tuple(_as_float(v, "snr_thresholds_db") for v in value)


def _chart_coords(chart: Dict[str, Any]) -> Optional[Tuple[float, ...]]:
    coords = chart.get("coords")
    roi_file = chart.get("roi_file")
    if coords:
        if not isinstance(coords, (list, tuple)):
            raise ConfigError("chart coords must be a list of 8 numbers")
        return tuple(_as_float(v, "chart coords") for v in coords)
    if roi_file:
        from utils.roi import load_chart_corners

        return tuple(load_chart_corners(roi_file))
    return None


def options_from_config(
    cfg: Dict[str, Any], input_files: Optional[Sequence[str | Path]] = None
) -> AnalysisOptions:
    """Build :class:`AnalysisOptions` from a merged config dictionary.

    ``input_files`` overrides ``input.files`` from the config.
    """
    calib = cfg.get("calibration", {}) or {}
    chart = cfg.get("chart", {}) or {}
    ana = cfg.get("analysis", {}) or {}
    out = cfg.get("output", {}) or {}

    files = input_files if input_files is not None else (cfg.get("input", {}) or {}).get("files", [])
    patches = chart.get("patches", [4, 6])
    if not isinstance(patches, (list, tuple)) or len(patches) != 2:
        raise ConfigError(f"chart patches must be [rows, cols], got {patches!r}")

    ch = ana.get("channels", {}) or {}
    try:
        avg_mode = AvgMode(str(ana.get("avg_mode", "full")).lower())
    except ValueError as exc:
        raise ConfigError(f"unknown avg_mode {ana.get('avg_mode')!r}") from exc

    opts = AnalysisOptions(
        input_files=tuple(str(f) for f in files or ()),
        dark_value=_opt_float(calib.get("dark_value"), "dark_value"),
        sat_value=_opt_float(calib.get("sat_value"), "sat_value"),
        dark_file=str(calib["dark_file"]) if calib.get("dark_file") else None,
        sat_file=str(calib["sat_file"]) if calib.get("sat_file") else None,
        chart_coords=_chart_coords(chart),
        chart_rows=_as_int(patches[0], "chart patches"),
        chart_cols=_as_int(patches[1], "chart patches"),
        patch_ratio=_as_float(ana.get("patch_ratio", 0.5), "patch_ratio"),
        poly_order=_as_int(ana.get("poly_order", 3), "poly_order"),
        dr_normalization_mpx=_as_float(ana.get("dr_normalization_mpx", 0.0), "dr_normalization_mpx"),
        snr_thresholds_db=_thresholds(ana.get("snr_thresholds_db", [12.0, 0.0])),
        channels=ChannelSelection(
            R=bool(ch.get("R", False)),
            G1=bool(ch.get("G1", False)),
            G2=bool(ch.get("G2", False)),
            B=bool(ch.get("B", False)),
            avg_mode=avg_mode,
        ),
        sensor_resolution_mpx=_as_float(ana.get("sensor_resolution_mpx", 0.0), "sensor_resolution_mpx"),
        saturation_proxy=_as_float(ana.get("saturation_proxy", 0.9), "saturation_proxy"),
        validation_threshold_db=_as_float(ana.get("validation_threshold_db", 12.0), "validation_threshold_db"),
        workers=_as_int(ana.get("workers", 0) or 0, "workers"),
        bayer_pattern=normalize_pattern(ana.get("bayer_pattern", "RGGB")),
        print_patches=bool(out.get("print_patches")),
    )
    logging.debug("Analysis options: %s", opts)
    return opts
