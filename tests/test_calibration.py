import logging

import pytest

np = pytest.importorskip("numpy")
tifffile = pytest.importorskip("tifffile")

from core.calibration import (
    CalibrationError,
    DEFAULT_BLACK_LEVEL,
    estimate_black_level,
    estimate_saturation_level,
    process_dark_frame,
    process_saturation_frame,
    resolve_calibration,
)
from core.loader import RawFrame
from core.sorting import FileInfo


def _info(name, img, iso=0.0, bits=None):
    frame = RawFrame.from_array(img, name, iso_speed=iso, bit_depth=bits)
    return FileInfo(str(frame.path), float(img.mean()), iso, frame=frame)


def test_dark_and_saturation_frames_exact():
    dark = RawFrame.from_array(np.full((100, 100), 64, np.uint16), "dark.dng")
    sat = RawFrame.from_array(np.full((100, 100), 16383, np.uint16), "sat.dng")
    assert process_dark_frame(dark) == 64.0
    assert process_saturation_frame(sat) == 16383.0


def test_dark_frame_from_tiff(tmp_path):
    path = tmp_path / "dark.tiff"
    tifffile.imwrite(path, np.full((10, 10), 64, np.uint16))
    assert process_dark_frame(path) == 64.0


def test_saturation_frame_uses_5th_percentile():
    img = np.full((10, 10), 4000, np.uint16)
    img.flat[:4] = 10  # hot/dead pixels below the 5% rank
    frame = RawFrame.from_array(img, "sat.dng")
    assert process_saturation_frame(frame) == 4000.0


def test_estimate_black_level_power_of_two():
    dark = np.full((20, 20), 600, np.uint16)
    dark[3, 4] = 500
    bright = np.full((20, 20), 3000, np.uint16)
    infos = [_info("a.dng", bright), _info("b.dng", dark)]
    assert estimate_black_level(infos) == 512.0


def test_estimate_black_level_fallback_for_zero_min(caplog):
    img = np.zeros((4, 4), np.uint16)
    with caplog.at_level(logging.WARNING):
        assert estimate_black_level([_info("z.dng", img)]) == DEFAULT_BLACK_LEVEL
    assert "too low" in caplog.text


def test_estimate_saturation_from_highest_iso(caplog):
    img = np.full((4, 4), 100, np.uint16)
    infos = [_info("a.dng", img, iso=100, bits=14), _info("b.dng", img, iso=1600, bits=12)]
    assert estimate_saturation_level(infos) == 4095.0
    with caplog.at_level(logging.WARNING):
        assert estimate_saturation_level([_info("c.dng", img, iso=100)]) == 16383.0
    assert "14 bits" in caplog.text


def test_resolve_priority():
    img = np.full((4, 4), 700, np.uint16)
    infos = [_info("a.dng", img, iso=100, bits=12)]
    cal = resolve_calibration(infos, dark_value=128.0, sat_value=4000.0)
    assert (cal.black_level, cal.saturation_level) == (128.0, 4000.0)
    cal = resolve_calibration(infos)
    assert (cal.black_level, cal.saturation_level) == (512.0, 4095.0)


def test_resolve_dedicated_file_wins(tmp_path):
    path = tmp_path / "dark.tiff"
    tifffile.imwrite(path, np.full((10, 10), 200, np.uint16))
    cal = resolve_calibration([], dark_value=64.0, sat_value=4095.0, dark_file=path)
    assert cal.black_level == 200.0


def test_unreadable_calibration_file_is_fatal(tmp_path):
    with pytest.raises(CalibrationError):
        resolve_calibration([], dark_file=tmp_path / "missing.dng", sat_value=4095.0)


def test_saturation_below_black_is_fatal():
    with pytest.raises(CalibrationError):
        resolve_calibration([], dark_value=500.0, sat_value=400.0)
