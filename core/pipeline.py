# core/pipeline.py – High-level analysis pipeline

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

__all__ = ["run_analysis", "run_pipeline", "AnalysisError"]

from utils.logger import log_memory_usage, apply_logging_config, RunLogCollector
import utils.config as cfgutil
from core.batch import CANCEL_MESSAGE, run_batch
from core.calibration import resolve_calibration
from core.chart import ChartProfile, build_chart_profile
from core.corners import attempt_corner_detection
from core.loader import RawFrame, RawLoadError, load_raw_frame
from core.models import Calibration, RunReport
from core.options import AnalysisOptions, ConfigError, options_from_config
from core.plotting import plot_snr_curve_individual, plot_snr_curves_summary
from core.report_gen import format_results_table, write_report
from core.sorting import (
    FileInfo,
    detect_sensor_resolution,
    determine_file_order,
    filter_input_files,
    generate_plot_labels,
    mark_saturated,
    pre_analyze_frames,
    select_detection_source,
)
from core.validation import validate_snr_results
from utils.metrics import format_metric


pipeline_lock = threading.Lock()


class AnalysisError(RuntimeError):
    """The run produced nothing to report."""


# ───────── stages


def _load_frames(files: Sequence[str], pattern: str) -> List[RawFrame]:
    frames: List[RawFrame] = []
    for path in files:
        try:
            frames.append(load_raw_frame(path, tiff_pattern=pattern))
        except RawLoadError as exc:
            logging.warning("Could not load RAW file: %s", exc)
    return frames


def _log_settings(options: AnalysisOptions, calibration: Calibration) -> None:
    logging.info(
        "%s: %.2f  %s: %.2f",
        format_metric("Black level"),
        calibration.black_level,
        format_metric("Saturation level"),
        calibration.saturation_level,
    )
    logging.info(
        "Patch ratio: %g  Polynomial order: %d  %s: %s",
        options.patch_ratio,
        options.poly_order,
        format_metric("SNR threshold"),
        ", ".join(f"{t:g}" for t in options.snr_thresholds_db),
    )
    logging.info(
        "%s: %.1f  DR normalization: %g Mpx",
        format_metric("Sensor resolution"),
        options.sensor_resolution_mpx,
        options.dr_normalization_mpx,
    )
    sel = options.channels
    logging.info(
        "Channels: %s  Average: %s",
        ",".join(ch.value for ch in sel.selected) or "-",
        sel.avg_mode.value,
    )


def _resolve_chart(
    options: AnalysisOptions, infos: Sequence[FileInfo], calibration: Calibration
) -> ChartProfile:
    detected = None
    if options.chart_coords is None:
        source = select_detection_source(infos)
        if source is not None and source.frame is not None:
            detected = attempt_corner_detection(source.frame, calibration)
    try:
        return build_chart_profile(
            options.chart_coords, options.chart_rows, options.chart_cols, detected
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid chart geometry: {exc}") from exc


# ───────── public api


def run_analysis(
    options: AnalysisOptions,
    *,
    cancel: Optional[threading.Event] = None,
    progress: Optional[Callable[[int], None]] = None,
    status: Optional[Callable[[str], None]] = None,
) -> RunReport:
    """Calibrate, order, analyse and validate every input frame.

    Raises :class:`ConfigError` / ``CalibrationError`` for fatal setup
    problems and :class:`AnalysisError` when no frame can be loaded.
    A cancelled run returns an empty report with ``cancelled`` set.
    """
    cancel = cancel or threading.Event()
    if status:
        status("Loading RAW files...")
    if progress:
        progress(0)

    files = filter_input_files(options.input_files, (options.dark_file, options.sat_file))
    frames = _load_frames(files, options.bayer_pattern)
    if not frames:
        raise AnalysisError("No input frame could be loaded")
    log_memory_usage("after load: ")

    infos = pre_analyze_frames(frames)
    if status:
        status("Resolving calibration...")
    calibration = resolve_calibration(
        infos,
        dark_value=options.dark_value,
        sat_value=options.sat_value,
        dark_file=options.dark_file,
        sat_file=options.sat_file,
    )
    infos = mark_saturated(infos, calibration.saturation_level)

    order = determine_file_order(infos)
    labels = generate_plot_labels(order, infos)
    by_name = {i.filename: i.frame for i in infos}
    ordered = [by_name[name] for name in order.sorted_filenames]

    if options.sensor_resolution_mpx <= 0:
        options = options.with_sensor_resolution(detect_sensor_resolution(ordered))
    _log_settings(options, calibration)

    if status:
        status("Locating chart...")
    chart = _resolve_chart(options, infos, calibration)
    if progress:
        progress(5)
    if cancel.is_set():
        logging.warning(CANCEL_MESSAGE)
        return RunReport(cancelled=True)

    if status:
        status("Starting Dynamic Range calculation process...")
    report = run_batch(
        ordered,
        calibration,
        chart,
        options,
        labels=labels,
        cancel=cancel,
        progress=progress,
    )
    if report.cancelled:
        return report

    report.coverage = validate_snr_results(
        report.curves,
        options.snr_thresholds_db,
        options.dr_normalization_mpx,
        options.validation_threshold_db,
    )
    table = format_results_table(report.dr_results)
    if table:
        logging.info("Dynamic range results:\n%s", table)
    log_memory_usage("after analysis: ")
    return report


def run_pipeline(
    cfg: Dict[str, Any],
    input_files: Optional[Sequence[str | Path]] = None,
    *,
    cancel: Optional[threading.Event] = None,
    progress: Optional[Callable[[int], None]] = None,
    status: Optional[Callable[[str], None]] = None,
) -> RunReport:
    """Run full analysis pipeline and write the configured outputs."""
    apply_logging_config(cfg)
    options = options_from_config(cfg, input_files)
    out_dir = cfgutil.output_dir(cfg)
    out_cfg = cfg.get("output", {})
    logging.info("Pipeline start: %d input file(s)", len(options.input_files))
    with pipeline_lock, RunLogCollector() as collector:
        log_memory_usage("start: ")
        report = run_analysis(options, cancel=cancel, progress=progress, status=status)
        if report.cancelled:
            return report
        if not report.dr_results:
            raise AnalysisError("No frame produced a dynamic range result")

        if status:
            status("Writing results...")
        out_dir.mkdir(parents=True, exist_ok=True)
        fmt = str(out_cfg.get("plot_format", "png")).lower()
        if out_cfg.get("plots", False):
            plot_snr_curves_summary(
                report.curves,
                options.snr_thresholds_db,
                out_dir / f"DR_summary.{fmt}",
                dr_results=report.dr_results,
            )
        if out_cfg.get("individual_plots", False):
            for curve in report.curves:
                name = f"{Path(curve.filename).stem}_{curve.channel.value}_snr_plot.{fmt}"
                plot_snr_curve_individual(curve, options.snr_thresholds_db, out_dir / name)
        write_report(
            report,
            options.snr_thresholds_db,
            cfg,
            out_dir,
            log_lines=collector.lines,
        )
        if progress:
            progress(100)
        logging.info("Pipeline finished")
    return report
