import logging
import threading

import pytest

np = pytest.importorskip("numpy")

import core.batch as batch
from core.batch import CANCEL_MESSAGE, run_batch, worker_count
from core.bayer import Channel
from core.chart import build_chart_profile
from core.loader import RawFrame
from core.models import Calibration, FrameResult
from core.options import AnalysisOptions

CAL = Calibration(256.0, 4095.0)
COORDS = (0, 0, 0, 238, 358, 238, 358, 0)


def _options(**kw):
    return AnalysisOptions(chart_coords=COORDS, chart_rows=2, chart_cols=3, **kw)


def _chart():
    return build_chart_profile(COORDS, 2, 3)


def test_worker_count():
    assert worker_count(3) == 3
    assert worker_count(0) >= 1


def test_results_keep_input_order(chart_frame):
    frames = [chart_frame(f"f{i}.dng", seed=i, iso=100 * (i + 1)) for i in range(5)]
    seen = []
    report = run_batch(
        frames, CAL, _chart(), _options(workers=2), progress=seen.append,
        labels={"f0.dng": "first"},
    )
    assert not report.cancelled
    assert [r.filename for r in report.dr_results] == [f"f{i}.dng" for i in range(5)]
    assert report.curves[0].label == "first"
    assert seen[-1] == 100
    assert report.debug_image is None


def test_failed_frame_is_skipped(chart_frame, caplog):
    black = RawFrame.from_array(np.full((240, 360), 256, np.uint16), "black.dng")
    with caplog.at_level(logging.WARNING):
        report = run_batch([black, chart_frame("ok.dng")], CAL, _chart(), _options(workers=1))
    assert [r.filename for r in report.dr_results] == ["ok.dng"]
    assert "Skipping black.dng" in caplog.text


def test_debug_image_from_first_frame(chart_frame):
    frames = [chart_frame("a.dng"), chart_frame("b.dng", seed=1)]
    report = run_batch(frames, CAL, _chart(), _options(workers=1, print_patches=True))
    assert report.debug_image is not None
    assert report.dr_results[0].channel == Channel.AVG


def test_cancel_after_first_frame(chart_frame, monkeypatch, caplog):
    cancel = threading.Event()
    real = batch.analyze_frame
    calls = []

    def analyze_then_cancel(*args, **kwargs):
        calls.append(args[0].filename)
        out = real(*args, **kwargs)
        cancel.set()
        return out

    monkeypatch.setattr(batch, "analyze_frame", analyze_then_cancel)
    frames = [chart_frame(f"f{i}.dng", seed=i) for i in range(4)]
    with caplog.at_level(logging.WARNING):
        report = run_batch(frames, CAL, _chart(), _options(workers=1), cancel=cancel)
    assert report.cancelled
    assert report.is_empty
    assert calls == ["f0.dng"]
    assert CANCEL_MESSAGE in caplog.text


def test_cancel_before_start(chart_frame):
    cancel = threading.Event()
    cancel.set()
    report = run_batch([chart_frame()], CAL, _chart(), _options(), cancel=cancel)
    assert report.cancelled and report.is_empty


def test_empty_frame_results_are_not_merged(chart_frame, monkeypatch):
    monkeypatch.setattr(batch, "analyze_frame", lambda *a, **k: FrameResult())
    report = run_batch([chart_frame()], CAL, _chart(), _options(workers=1))
    assert report.is_empty and not report.cancelled


def test_unexpected_frame_error_does_not_abort_batch(chart_frame, monkeypatch, caplog):
    real = batch.analyze_frame

    def flaky(frame, *args, **kwargs):
        if frame.filename == "bad.dng":
            raise IndexError("odd decoder output")
        return real(frame, *args, **kwargs)

    monkeypatch.setattr(batch, "analyze_frame", flaky)
    frames = [chart_frame("bad.dng"), chart_frame("good.dng", seed=1)]
    with caplog.at_level(logging.ERROR):
        report = run_batch(frames, CAL, _chart(), _options(workers=2))
    assert [r.filename for r in report.dr_results] == ["good.dng"]
    assert "Unexpected failure while analyzing bad.dng" in caplog.text
