import logging

import pytest

np = pytest.importorskip("numpy")

from core.loader import RawFrame
from core.sorting import (
    detect_sensor_resolution,
    determine_file_order,
    filter_input_files,
    generate_plot_labels,
    mark_saturated,
    pre_analyze_frames,
    select_detection_source,
)


def _frame(name, level, iso=0.0, shape=(64, 64)):
    return RawFrame.from_array(np.full(shape, level, np.uint16), name, iso_speed=iso)


def test_brightness_order_wins_over_iso(caplog):
    infos = pre_analyze_frames([_frame("A.dng", 3000, iso=100), _frame("B.dng", 1000, iso=400)])
    with caplog.at_level(logging.INFO):
        order = determine_file_order(infos)
    assert [f.split("/")[-1] for f in order.sorted_filenames] == ["B.dng", "A.dng"]
    assert order.was_exif_sort_possible
    assert "DIFFERENT file orders" in caplog.text
    labels = generate_plot_labels(order, infos)
    assert sorted(labels.values()) == ["ISO 100", "ISO 400"]


def test_matching_orders_logged(caplog):
    infos = pre_analyze_frames([_frame("a.dng", 1000, iso=100), _frame("b.dng", 3000, iso=400)])
    with caplog.at_level(logging.INFO):
        determine_file_order(infos)
    assert "same file order" in caplog.text


def test_missing_iso_falls_back_to_stems(caplog):
    infos = pre_analyze_frames([_frame("low.dng", 500, iso=100), _frame("high.dng", 900)])
    with caplog.at_level(logging.WARNING):
        order = determine_file_order(infos)
    assert not order.was_exif_sort_possible
    assert "Cannot use EXIF data" in caplog.text
    assert list(generate_plot_labels(order, infos).values()) == ["low", "high"]


def test_filter_excludes_calibration_and_duplicates(caplog):
    with caplog.at_level(logging.WARNING):
        files = filter_input_files(["a.dng", "dark.dng", "b.dng", "a.dng"], ["dark.dng", None])
    assert files == ["a.dng", "b.dng"]
    assert "Duplicate input file ignored" in caplog.text


def test_pre_analysis_samples_active_area():
    img = np.full((32, 32), 100, np.uint16)
    img[:, :8] = 4000
    frame = RawFrame.from_array(img, "m.dng", left_margin=8)
    (info,) = pre_analyze_frames([frame])
    assert info.mean_brightness == 100.0


def test_saturation_flag_and_detection_source(caplog):
    clipped = np.full((40, 40), 1000, np.uint16)
    clipped[:10, :10] = 4095
    infos = pre_analyze_frames(
        [_frame("dim.dng", 500), RawFrame.from_array(clipped, "clip.dng"), _frame("mid.dng", 800)]
    )
    infos = mark_saturated(infos, 4095.0)
    assert [i.has_saturated_pixels for i in infos] == [False, True, False]
    assert select_detection_source(infos).name == "mid.dng"

    all_clipped = mark_saturated(infos, 400.0)
    with caplog.at_level(logging.WARNING):
        assert select_detection_source(all_clipped).name == "dim.dng"
    assert select_detection_source([]) is None


def test_sensor_resolution_first_sane_frame():
    small = _frame("s.dng", 10, shape=(8, 8))
    big = _frame("b.dng", 10, shape=(400, 600))
    assert detect_sensor_resolution([small, big]) == pytest.approx(0.24)
    assert detect_sensor_resolution([small]) == 0.0
