# scripts/gen_synthetic_chart.py
"""Write 16-bit TIFF Bayer mosaics of a patch chart at several gains.

Each patch row/column holds one signal level; noise follows a shot + read
model so the resulting SNR curves are realistic enough for the pipeline.
"""
import argparse
import pathlib

import numpy as np
import tifffile


def make_chart(rows, cols, cell, gain, black, sat, rng):
    n = rows * cols
    levels = 2.0 ** (-np.arange(n) * 12.0 / (n - 1)) * 0.8  # 0.8 .. 0.8*2^-12
    plane_h, plane_w = rows * cell, cols * cell
    mosaic = np.empty((plane_h * 2, plane_w * 2), np.float64)
    span = sat - black
    for k, s in enumerate(levels):
        r, c = divmod(k, cols)
        electrons = s * span / gain
        block = rng.poisson(electrons, (cell * 2, cell * 2)) * gain
        block = block + rng.normal(0.0, 2.0 * gain, block.shape)
        mosaic[r * cell * 2 : (r + 1) * cell * 2, c * cell * 2 : (c + 1) * cell * 2] = block
    return np.clip(np.rint(mosaic + black), 0, sat).astype(np.uint16)


def main(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("outdir", type=pathlib.Path)
    parser.add_argument("--gains", type=float, nargs="+", default=[0.25, 1.0, 4.0])
    parser.add_argument("--rows", type=int, default=4)
    parser.add_argument("--cols", type=int, default=6)
    parser.add_argument("--cell", type=int, default=40, help="patch size in plane pixels")
    parser.add_argument("--black", type=float, default=256.0)
    parser.add_argument("--sat", type=float, default=4095.0)
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args(argv)

    rng = np.random.default_rng(args.seed)
    args.outdir.mkdir(parents=True, exist_ok=True)
    for g in args.gains:
        img = make_chart(args.rows, args.cols, args.cell, g, args.black, args.sat, rng)
        tifffile.imwrite(args.outdir / f"chart_gain{g:g}.tiff", img)
    h, w = img.shape
    print("Synthetic charts written:", args.outdir)
    print(f"Chart corners: 0 0 0 {h - 2} {w - 2} {h - 2} {w - 2} 0")


if __name__ == "__main__":
    main()
