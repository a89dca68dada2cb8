# core/sorting.py – Input filtering, pre-analysis, processing order and labels

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from core.loader import RawFrame

__all__ = [
    "FileInfo",
    "FileOrder",
    "filter_input_files",
    "pre_analyze_frames",
    "mark_saturated",
    "determine_file_order",
    "generate_plot_labels",
    "select_detection_source",
    "detect_sensor_resolution",
    "SATURATED_PIXEL_LEVEL",
    "MAX_PRE_ANALYSIS_SATURATION_RATIO",
]

# pixel counts as clipped at this fraction of the saturation level
SATURATED_PIXEL_LEVEL = 0.99
MAX_PRE_ANALYSIS_SATURATION_RATIO = 0.001
_SAMPLE_STEP = 8


@dataclass(frozen=True)
class FileInfo:
    filename: str
    mean_brightness: float
    iso_speed: float = 0.0
    has_saturated_pixels: bool = False
    frame: Optional[RawFrame] = None

    @property
    def name(self) -> str:
        return Path(self.filename).name


@dataclass(frozen=True)
class FileOrder:
    sorted_filenames: List[str]
    was_exif_sort_possible: bool


# ───────── input list


def filter_input_files(
    files: Iterable[str | Path],
    calibration_files: Iterable[Optional[str | Path]] = (),
) -> List[str]:
    """Drop calibration frames and duplicates, keeping first-seen order."""
    calib = {str(Path(p)) for p in calibration_files if p}
    excluded: List[str] = []
    unique: List[str] = []
    seen = set()
    for f in files:
        key = str(Path(f))
        if key in calib:
            excluded.append(key)
            continue
        if key in seen:
            logging.warning("Duplicate input file ignored: %s", key)
            continue
        seen.add(key)
        unique.append(key)
    if excluded:
        logging.info(
            "Excluded from analysis (used for calibration): %s",
            ", ".join(Path(p).name for p in excluded),
        )
    return unique


# ───────── pre-analysis


def pre_analyze_frames(frames: Sequence[RawFrame]) -> List[FileInfo]:
    """Mean brightness (sparse sample) and ISO of every frame."""
    infos: List[FileInfo] = []
    for frame in frames:
        active = frame.active_image
        if active.size == 0:
            logging.warning("No active sensor area in %s; skipped", frame.filename)
            continue
        sample = active[::_SAMPLE_STEP, ::_SAMPLE_STEP]
        infos.append(
            FileInfo(
                filename=str(frame.path),
                mean_brightness=float(sample.mean()),
                iso_speed=float(frame.iso_speed),
                frame=frame,
            )
        )
        logging.debug("Pre-analyzed file: %s", frame.filename)
    return infos


def mark_saturated(infos: Sequence[FileInfo], saturation_level: float) -> List[FileInfo]:
    """Flag frames whose clipped-pixel share exceeds 0.1%."""
    out: List[FileInfo] = []
    for info in infos:
        flag = False
        if info.frame is not None:
            active = info.frame.active_image
            clipped = np.count_nonzero(active >= saturation_level * SATURATED_PIXEL_LEVEL)
            flag = clipped / max(active.size, 1) > MAX_PRE_ANALYSIS_SATURATION_RATIO
        out.append(replace(info, has_saturated_pixels=flag))
    return out


# ───────── order & labels


def determine_file_order(infos: Sequence[FileInfo]) -> FileOrder:
    """Processing order: ascending brightness, cross-checked against ISO."""
    exif_ok = bool(infos) and all(i.iso_speed > 0 for i in infos)
    list_a = sorted(infos, key=lambda i: i.mean_brightness)
    if exif_ok:
        list_b = sorted(infos, key=lambda i: i.iso_speed)
        if [i.filename for i in list_a] == [i.filename for i in list_b]:
            logging.info("Sorting by brightness and by ISO produce the same file order.")
        else:
            logging.warning(
                "Sorting by brightness and by ISO produce DIFFERENT file orders."
            )
    else:
        logging.warning(
            "Cannot use EXIF data. ISO not available in all files. "
            "Using brightness sorting."
        )
    logging.info("Using final file order from: Image Brightness (List A)")
    return FileOrder([i.filename for i in list_a], exif_ok)


def generate_plot_labels(
    order: FileOrder, infos: Sequence[FileInfo]
) -> Dict[str, str]:
    by_name = {i.filename: i for i in infos}
    labels: Dict[str, str] = {}
    for filename in order.sorted_filenames:
        if order.was_exif_sort_possible:
            labels[filename] = f"ISO {int(by_name[filename].iso_speed)}"
        else:
            labels[filename] = Path(filename).stem
    return labels


# ───────── helpers for later stages


def select_detection_source(infos: Sequence[FileInfo]) -> Optional[FileInfo]:
    """Brightest unsaturated frame, else the darkest one."""
    if not infos:
        return None
    usable = [i for i in infos if not i.has_saturated_pixels]
    if usable:
        chosen = max(usable, key=lambda i: i.mean_brightness)
    else:
        chosen = min(infos, key=lambda i: i.mean_brightness)
        logging.warning(
            "All frames contain clipped pixels; using the darkest (%s) for corner detection",
            chosen.name,
        )
    return chosen


def detect_sensor_resolution(frames: Sequence[RawFrame]) -> float:
    """Sensor size in Mpx from the first frame that reports a sane value."""
    for frame in frames:
        mpx = frame.sensor_resolution_mpx
        if mpx > 0.1:
            logging.info("Sensor resolution detected from RAW dimensions: %.1f Mpx", mpx)
            return mpx
    return 0.0
