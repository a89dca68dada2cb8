import pytest

np = pytest.importorskip("numpy")

from core.bayer import Channel
from core.patches import analyze_patches


def test_uniform_patch_snr_matches_noise():
    rng = np.random.default_rng(0)
    img = rng.normal(0.3, 0.01, (200, 200))
    res = analyze_patches(img, 1, 1, 1.0, -10.0, 256.0)
    assert res.samples == 1
    assert res.signal[0] / res.noise[0] == pytest.approx(30.0, rel=0.02)
    assert res.max_pixel_value == pytest.approx(0.3, abs=1e-3)


def test_grid_order_and_channel_tags():
    img = np.zeros((40, 60))
    rng = np.random.default_rng(1)
    levels = [0.5, 0.4, 0.3, 0.2, 0.1, 0.05]
    for k, s in enumerate(levels):
        r, c = divmod(k, 3)
        img[r * 20 : (r + 1) * 20, c * 20 : (c + 1) * 20] = rng.normal(s, 0.005, (20, 20))
    res = analyze_patches(img, 2, 3, 0.5, -10.0, 256.0, channel=Channel.R)
    np.testing.assert_allclose(res.signal, levels, atol=0.005)
    assert res.channels == [Channel.R] * 6
    assert res.sample_counts()[Channel.R] == 6


def test_saturated_patch_rejected():
    rng = np.random.default_rng(2)
    img = rng.normal(0.95, 0.01, (50, 50))
    assert analyze_patches(img, 1, 1, 0.5, -10.0, 256.0).samples == 0
    # a higher proxy keeps it
    assert analyze_patches(img, 1, 1, 0.5, -10.0, 256.0, saturation_proxy=1.5).samples == 1


def test_low_snr_patch_depends_on_threshold():
    rng = np.random.default_rng(3)
    img = rng.normal(0.01, 0.05, (100, 100))  # about -14 dB
    assert analyze_patches(img, 1, 1, 1.0, -10.0, 256.0).samples == 0
    assert analyze_patches(img, 1, 1, 1.0, -90.0, 256.0).samples == 1


def test_flat_and_dark_patches_rejected():
    assert analyze_patches(np.full((30, 30), 0.2), 1, 1, 0.5, -90.0, 0.0).samples == 0
    assert analyze_patches(np.full((30, 30), -0.1), 1, 1, 0.5, -90.0, 256.0).samples == 0


def test_overlay_marks_accepted_patch():
    rng = np.random.default_rng(4)
    img = rng.normal(0.2, 0.01, (40, 40))
    res = analyze_patches(img, 1, 1, 0.5, -10.0, 256.0, create_overlay=True)
    assert res.overlay is not None and res.overlay.shape == img.shape
    assert res.overlay[10, 10:30].min() == 1.0
    assert analyze_patches(img, 1, 1, 0.5, -10.0, 256.0).overlay is None


def test_bad_arguments():
    with pytest.raises(ValueError):
        analyze_patches(np.zeros((4, 4)), 0, 1, 0.5, -10.0, 256.0)
    with pytest.raises(ValueError):
        analyze_patches(np.zeros((4, 4)), 1, 1, 0.0, -10.0, 256.0)
