import pytest

np = pytest.importorskip("numpy")

from core.geometry import (
    bounding_rectangle,
    calculate_keystone_params,
    order_corners,
    polygon_area,
    undo_keystone,
)

SQUARE = [(100.0, 100.0), (100.0, 900.0), (900.0, 900.0), (900.0, 100.0)]


def _map(k, x, y):
    d = k[6] * x + k[7] * y + 1.0
    return (k[0] * x + k[1] * y + k[2]) / d, (k[3] * x + k[4] * y + k[5]) / d


def test_identity_keystone():
    k = calculate_keystone_params(SQUARE, SQUARE)
    np.testing.assert_allclose(k, [1, 0, 0, 0, 1, 0, 0, 0], atol=1e-9)

    img = np.random.default_rng(0).random((60, 80)).astype(np.float32)
    k = calculate_keystone_params(
        [(5.0, 5.0), (5.0, 50.0), (70.0, 50.0), (70.0, 5.0)],
        [(5.0, 5.0), (5.0, 50.0), (70.0, 50.0), (70.0, 5.0)],
    )
    out = undo_keystone(img, k)
    np.testing.assert_array_equal(out[1:-1, 1:-1], img[1:-1, 1:-1])


def test_keystone_maps_destination_onto_source():
    src = [(120.0, 90.0), (80.0, 930.0), (950.0, 880.0), (870.0, 130.0)]
    k = calculate_keystone_params(src, SQUARE)
    for (xu, yu), (xd, yd) in zip(src, SQUARE):
        mx, my = _map(k, xd, yd)
        assert mx == pytest.approx(xu, abs=1e-6)
        assert my == pytest.approx(yu, abs=1e-6)


def test_keystone_rectifies_watermark():
    src = [(120.0, 90.0), (80.0, 930.0), (950.0, 880.0), (870.0, 130.0)]
    k = calculate_keystone_params(src, SQUARE)
    centre = (500.0, 400.0)
    sx, sy = _map(k, *centre)

    distorted = np.zeros((1000, 1000), np.float32)
    ix, iy = int(round(sx)), int(round(sy))
    distorted[iy - 2 : iy + 3, ix - 2 : ix + 3] = 1.0

    out = undo_keystone(distorted, k)
    ys, xs = np.nonzero(out)
    assert xs.size > 0
    assert xs.mean() == pytest.approx(centre[0], abs=1.0)
    assert ys.mean() == pytest.approx(centre[1], abs=1.0)


def test_undo_keystone_zero_outside_source():
    img = np.ones((20, 20), np.float32)
    k = np.array([1, 0, 15, 0, 1, 0, 0, 0], dtype=float)  # shift by 15 px
    out = undo_keystone(img, k)
    assert out[:, :5].min() == 1.0
    assert out[:, 5:].max() == 0.0


def test_order_corners_known_rectangle():
    pts = [(10.0, 5.0), (0.0, 0.0), (0.0, 5.0), (10.0, 0.0)]
    assert order_corners(pts) == [(0.0, 0.0), (0.0, 5.0), (10.0, 5.0), (10.0, 0.0)]


def _segments_cross(p1, p2, q1, q2):
    def orient(a, b, c):
        return np.sign((b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0]))

    return (
        orient(p1, p2, q1) != orient(p1, p2, q2)
        and orient(q1, q2, p1) != orient(q1, q2, p2)
    )


@pytest.mark.parametrize("seed", range(25))
def test_order_corners_gives_simple_polygon(seed):
    rng = np.random.default_rng(seed)
    base = np.array([(20.0, 20.0), (20.0, 80.0), (120.0, 80.0), (120.0, 20.0)])
    pts = base + rng.uniform(-10.0, 10.0, base.shape)
    shuffled = [tuple(p) for p in rng.permutation(pts)]
    tl, bl, br, tr = order_corners(shuffled)
    assert sorted([tl, bl, br, tr]) == sorted(shuffled)
    assert not _segments_cross(tl, bl, br, tr)
    assert not _segments_cross(bl, br, tr, tl)


def test_order_corners_rejects_degenerate():
    with pytest.raises(ValueError):
        order_corners([(1.0, 1.0)] * 4)
    with pytest.raises(ValueError):
        order_corners([(0.0, 0.0), (1.0, 1.0), (2.0, 2.0)])


def test_bounding_rectangle_and_area():
    rect = bounding_rectangle([(2.0, 3.0), (1.0, 9.0), (7.0, 8.0), (6.0, 2.0)])
    assert rect == [(1.0, 2.0), (1.0, 9.0), (7.0, 9.0), (7.0, 2.0)]
    assert polygon_area(rect) == pytest.approx(42.0)
    assert polygon_area([(0, 0), (0, 1), (1, 1), (1, 0)]) == pytest.approx(1.0)
