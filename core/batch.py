# core/batch.py – Threaded fan-out of the per-frame analysis

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from core.analysis import FrameAnalysisError, analyze_frame
from core.chart import ChartProfile
from core.geometry import calculate_keystone_params
from core.loader import RawFrame
from core.models import Calibration, FrameResult, RunReport
from core.options import AnalysisOptions

__all__ = ["run_batch", "worker_count", "CANCEL_MESSAGE"]

CANCEL_MESSAGE = "Analysis cancelled by user"


def worker_count(requested: int = 0) -> int:
    if requested and requested > 0:
        return int(requested)
    return max(1, os.cpu_count() or 1)


def _analyze_one(
    frame: RawFrame,
    calibration: Calibration,
    chart: ChartProfile,
    keystone: np.ndarray,
    options: AnalysisOptions,
    label: Optional[str],
    debug: bool,
    cancel: threading.Event,
) -> FrameResult:
    try:
        return analyze_frame(
            frame,
            calibration,
            chart,
            keystone,
            options,
            label=label,
            create_debug_image_flag=debug,
            cancel=cancel,
        )
    except (FrameAnalysisError, ValueError, np.linalg.LinAlgError) as exc:
        logging.warning("Skipping %s: %s", frame.filename, exc)
    except Exception:
        logging.exception("Unexpected failure while analyzing %s; frame skipped", frame.filename)
    return FrameResult()


def run_batch(
    frames: Sequence[RawFrame],
    calibration: Calibration,
    chart: ChartProfile,
    options: AnalysisOptions,
    *,
    labels: Optional[Dict[str, str]] = None,
    cancel: Optional[threading.Event] = None,
    progress: Optional[Callable[[int], None]] = None,
) -> RunReport:
    """Analyse ``frames`` in chunks of one frame per worker thread.

    Results keep the order of ``frames``. When ``cancel`` is set the run
    stops dispatching, waits for running frames and returns an empty report.
    """
    cancel = cancel or threading.Event()
    labels = labels or {}
    keystone = calculate_keystone_params(chart.corner_points, chart.destination_points)
    logging.info("Keystone parameters calculated once for the series: %s", np.round(keystone, 6))
    logging.info(
        "Analyzing chart using a grid of %d columns by %d rows.", chart.cols, chart.rows
    )

    workers = worker_count(options.workers)
    report = RunReport()
    lock = threading.Lock()
    total = len(frames)
    done = 0

    def cancelled() -> RunReport:
        logging.warning(CANCEL_MESSAGE)
        return RunReport(cancelled=True)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        for start in range(0, total, workers):
            if cancel.is_set():
                return cancelled()
            chunk = frames[start : start + workers]
            futures = [
                pool.submit(
                    _analyze_one,
                    frame,
                    calibration,
                    chart,
                    keystone,
                    options,
                    labels.get(str(frame.path), labels.get(frame.filename)),
                    options.print_patches and start + i == 0,
                    cancel,
                )
                for i, frame in enumerate(chunk)
            ]
            results: List[FrameResult] = []
            stop = False
            for fut in futures:
                results.append(fut.result())
                if cancel.is_set():
                    stop = True
            if stop:
                return cancelled()
            with lock:
                for res in results:
                    if res.is_empty:
                        continue
                    report.dr_results.extend(res.dr_results)
                    report.curves.extend(res.curves)
                    if res.overlay is not None and report.debug_image is None:
                        report.debug_image = res.overlay
                done += len(chunk)
            if progress:
                progress(int(100 * done / max(total, 1)))
    return report
