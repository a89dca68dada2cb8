import numpy as np
import pytest

from core.loader import RawFrame

BLACK = 256.0
SAT = 4095.0


def plane_chart(levels, rows, cols, cell, rng, read_noise_dn=2.0, gain=1.0):
    """Half-resolution plane (DN) with one signal level per cell."""
    span = SAT - BLACK
    plane = np.empty((rows * cell, cols * cell), np.float64)
    for k, s in enumerate(levels):
        r, c = divmod(k, cols)
        sigma = np.sqrt(s * span * gain + read_noise_dn**2)
        block = rng.normal(BLACK + s * span, sigma, (cell, cell))
        plane[r * cell : (r + 1) * cell, c * cell : (c + 1) * cell] = block
    return plane


def to_mosaic(plane):
    """Repeat every plane pixel over a 2x2 Bayer cell."""
    mosaic = np.kron(plane, np.ones((2, 2)))
    return np.clip(np.rint(mosaic), 0, SAT).astype(np.uint16)


@pytest.fixture
def chart_frame():
    """Factory returning a RawFrame with a 2x3 (or custom) patch chart."""

    def make(name="chart.dng", rows=2, cols=3, cell=60, levels=None, seed=0, iso=0.0, gain=1.0):
        rng = np.random.default_rng(seed)
        if levels is None:
            levels = 0.5 * 2.0 ** -np.arange(rows * cols, dtype=float)
        plane = plane_chart(levels, rows, cols, cell, rng, gain=gain)
        return RawFrame.from_array(to_mosaic(plane), name, iso_speed=iso, bit_depth=12)

    return make


@pytest.fixture
def tiff_chart(tmp_path):
    """Factory writing a 16-bit TIFF mosaic of a patch chart to ``tmp_path``."""
    tifffile = pytest.importorskip("tifffile")

    def make(name, rows=4, cols=6, cell=40, scale=1.0, seed=0):
        rng = np.random.default_rng(seed)
        levels = scale * 0.8 * 2.0 ** (-0.5 * np.arange(rows * cols, dtype=float))
        plane = plane_chart(levels, rows, cols, cell, rng)
        path = tmp_path / name
        tifffile.imwrite(str(path), to_mosaic(plane))
        return path

    return make
