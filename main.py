#!/usr/bin/env python
import sys
import os
import logging
import faulthandler
import argparse
from pathlib import Path

from utils.logger import setup_logging
from utils.config import load_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Measure sensor dynamic range from RAW captures of a patch chart."
    )
    parser.add_argument("files", nargs="*", help="RAW (or TIFF mosaic) input files")
    parser.add_argument("--config", help="Project config.yaml (or its folder)", type=str)
    parser.add_argument("-o", "--output-dir", type=str)
    parser.add_argument("--black-level", type=float, dest="dark_value")
    parser.add_argument("--saturation-level", type=float, dest="sat_value")
    parser.add_argument("--black-file", type=str, dest="dark_file")
    parser.add_argument("--saturation-file", type=str, dest="sat_file")
    parser.add_argument("--chart-coords", type=float, nargs=8, metavar="XY")
    parser.add_argument("--patches", type=int, nargs=2, metavar=("ROWS", "COLS"))
    parser.add_argument("--snr-thresholds", type=float, nargs="+", metavar="DB")
    parser.add_argument("--dr-normalization-mpx", type=float)
    parser.add_argument("--poly-order", type=int, choices=(2, 3))
    parser.add_argument("--patch-ratio", type=float)
    parser.add_argument("--plots", action="store_true")
    parser.add_argument("--print-patches", type=str, metavar="FILE")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _apply_overrides(cfg: dict, args: argparse.Namespace) -> dict:
    calib = cfg.setdefault("calibration", {})
    for key in ("dark_value", "sat_value", "dark_file", "sat_file"):
        if getattr(args, key) is not None:
            calib[key] = getattr(args, key)
    chart = cfg.setdefault("chart", {})
    if args.chart_coords:
        chart["coords"] = list(args.chart_coords)
    if args.patches:
        chart["patches"] = list(args.patches)
    ana = cfg.setdefault("analysis", {})
    if args.snr_thresholds:
        ana["snr_thresholds_db"] = list(args.snr_thresholds)
    if args.dr_normalization_mpx is not None:
        ana["dr_normalization_mpx"] = args.dr_normalization_mpx
    if args.poly_order is not None:
        ana["poly_order"] = args.poly_order
    if args.patch_ratio is not None:
        ana["patch_ratio"] = args.patch_ratio
    out = cfg.setdefault("output", {})
    if args.output_dir:
        out["output_dir"] = args.output_dir
    if args.plots:
        out["plots"] = True
    if args.print_patches:
        out["print_patches"] = args.print_patches
    if args.verbose:
        cfg.setdefault("logging", {})["level"] = "DEBUG"
    return cfg


def main(argv=None) -> int:
    setup_logging()
    if not os.environ.get("NO_FAULTHANDLER"):
        try:
            faulthandler.enable()
        except Exception as exc:  # pragma: no cover - fail safe
            logging.debug("Failed to enable faulthandler: %s", exc)

    args = build_parser().parse_args(argv)
    from core.pipeline import AnalysisError, run_pipeline
    from core.calibration import CalibrationError
    from core.options import ConfigError

    try:
        cfg = _apply_overrides(load_config(args.config), args)
        files = args.files or None
        report = run_pipeline(cfg, files)
    except (ConfigError, CalibrationError, AnalysisError, OSError) as exc:
        logging.error("%s", exc)
        return 1
    if report.cancelled:
        return 0
    logging.info("Done: %d result(s) written to %s", len(report.dr_results), Path(cfg["output"]["output_dir"]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
