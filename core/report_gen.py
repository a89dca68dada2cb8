# core/report_gen.py – CSV / text / JSON / image outputs of a run

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import tifffile

from core.mathkernel import eval_poly
from core.models import DynamicRangeResult, RunReport, SnrCurve
from utils.metrics import DETAILED_HEADER, format_dr_column, format_ev

__all__ = [
    "flatten_results",
    "format_results_table",
    "save_results_csv",
    "save_detailed_csv",
    "save_snr_curves_json",
    "save_run_log",
    "save_debug_image",
    "write_report",
]

# ──────────────────────────────────────────────── helpers


def _write_if_enabled(flag: bool, path: Path, writer) -> Optional[Path]:
    if flag:
        writer(path)
        logging.info("Written: %s", path)
        return path
    return None


def flatten_results(results: Sequence[DynamicRangeResult]) -> List[Dict[str, Any]]:
    """One row per result and threshold.

    Sorted by threshold (descending), ISO and filename (ascending).
    """
    rows: List[Dict[str, Any]] = []
    for res in results:
        for thr, dr in res.dr_values_ev.items():
            rows.append(
                {
                    "raw_file": res.filename,
                    "SNRthreshold_db": thr,
                    "ISO": res.iso,
                    "raw_channel": res.channel.value,
                    "samples_R": res.samples_R,
                    "samples_G1": res.samples_G1,
                    "samples_G2": res.samples_G2,
                    "samples_B": res.samples_B,
                    "DR_EV": dr,
                }
            )
    rows.sort(key=lambda r: (-r["SNRthreshold_db"], r["ISO"], r["raw_file"]))
    return rows


# ──────────────────────────────────────────────── public api


def format_results_table(results: Sequence[DynamicRangeResult]) -> str:
    """Fixed-width table of the flattened results for the log."""
    rows = flatten_results(results)
    if not rows:
        return ""
    header = ["raw_file", "SNR_db", "ISO", "Channel", "samples_R", "samples_G1", "samples_G2", "samples_B", "DR_EV"]
    body = [
        [
            r["raw_file"],
            f"{r['SNRthreshold_db']:.2f}",
            str(int(r["ISO"])),
            r["raw_channel"],
            str(r["samples_R"]),
            str(r["samples_G1"]),
            str(r["samples_G2"]),
            str(r["samples_B"]),
            f"{r['DR_EV']:.4f}",
        ]
        for r in rows
    ]
    table = [header] + body
    widths = [max(len(row[i]) for row in table) for i in range(len(header))]

    def fmt(row: List[str]) -> str:
        cells = [
            text.ljust(widths[i]) if i in (0, 3) else text.rjust(widths[i])
            for i, text in enumerate(row)
        ]
        return "  ".join(cells).rstrip()

    lines = [fmt(header), "-" * len(fmt(header))]
    lines.extend(fmt(row) for row in body)
    return "\n".join(lines)


def save_results_csv(
    results: Sequence[DynamicRangeResult], thresholds_db: Sequence[float], path: Path
) -> None:
    """``raw_file,DR(<t>dB)...,patches_used``; missing values are 0.0000."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        w = csv.writer(fh, lineterminator="\n")
        w.writerow(["raw_file"] + [format_dr_column(t) for t in thresholds_db] + ["patches_used"])
        for res in results:
            w.writerow(
                [Path(res.filename).name]
                + [format_ev(res.dr_values_ev.get(float(t))) for t in thresholds_db]
                + [res.patches_used]
            )


def save_detailed_csv(results: Sequence[DynamicRangeResult], path: Path) -> None:
    path = Path(path)
    with path.open("w", newline="", encoding="utf-8") as fh:
        w = csv.DictWriter(fh, fieldnames=DETAILED_HEADER, lineterminator="\n")
        w.writeheader()
        for row in flatten_results(results):
            row = dict(row)
            row["SNRthreshold_db"] = f"{row['SNRthreshold_db']:.2f}"
            row["ISO"] = int(row["ISO"])
            row["DR_EV"] = format_ev(row["DR_EV"])
            w.writerow(row)


def save_snr_curves_json(
    curves: Sequence[SnrCurve], path: Path, *, num_points: int = 200
) -> None:
    """Dump sample points and fitted curve of every SNR curve as JSON."""
    out: Dict[str, Any] = {}
    for curve in curves:
        key = f"{curve.filename}:{curve.channel.value}"
        entry: Dict[str, Any] = {
            "label": curve.label,
            "iso": curve.iso,
            "camera_model": curve.camera_model,
            "signal_ev": curve.signal_ev.tolist(),
            "snr_db": curve.snr_db.tolist(),
            "coefficients": np.asarray(curve.coefficients).tolist(),
        }
        if curve.snr_db.size:
            xs = np.linspace(float(curve.snr_db.min()), float(curve.snr_db.max()), num_points)
            entry["fit_snr_db"] = xs.tolist()
            entry["fit_signal_ev"] = eval_poly(curve.coefficients, xs).tolist()
        out[key] = entry
    Path(path).write_text(json.dumps(out, indent=2), encoding="utf-8")


def save_run_log(lines: Sequence[str], path: Path) -> None:
    Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")


def save_debug_image(image: np.ndarray, path: Path) -> None:
    """PNG/JPEG through matplotlib, anything else as float32 TIFF."""
    path = Path(path)
    if path.suffix.lower() in {".png", ".jpg", ".jpeg"}:
        plt.imsave(str(path), np.clip(image, 0.0, 1.0), cmap="gray", vmin=0.0, vmax=1.0)
    else:
        tifffile.imwrite(str(path), np.asarray(image, dtype=np.float32))


def write_report(
    report: RunReport,
    thresholds_db: Sequence[float],
    cfg: Mapping[str, Any],
    out_dir: Path,
    *,
    log_lines: Optional[Sequence[str]] = None,
) -> Dict[str, Path]:
    """Write the CSV and the data outputs enabled in ``cfg["output"]``."""
    out_cfg = cfg.get("output", {})
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Path] = {}

    csv_path = out_dir / out_cfg.get("csv_file", "results.csv")
    save_results_csv(report.dr_results, thresholds_db, csv_path)
    logging.info("Results saved to %s", csv_path)
    written["csv"] = csv_path

    p = _write_if_enabled(
        bool(out_cfg.get("detailed_csv", True)),
        csv_path.with_name(csv_path.stem + "_detailed.csv"),
        lambda q: save_detailed_csv(report.dr_results, q),
    )
    if p:
        written["detailed_csv"] = p

    p = _write_if_enabled(
        bool(out_cfg.get("snr_curves_json", False)),
        out_dir / "snr_curves.json",
        lambda q: save_snr_curves_json(report.curves, q),
    )
    if p:
        written["json"] = p

    print_patches = out_cfg.get("print_patches")
    if print_patches and report.debug_image is not None:
        p = _write_if_enabled(
            True, out_dir / str(print_patches), lambda q: save_debug_image(report.debug_image, q)
        )
        written["debug_image"] = p

    if out_cfg.get("log_file", True) and log_lines is not None:
        p = _write_if_enabled(True, out_dir / "dynarange.log", lambda q: save_run_log(log_lines, q))
        written["log"] = p
    return written
