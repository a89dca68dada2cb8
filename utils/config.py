# utils/config.py – Config utilities (YAML defaults merged with the project file)

from __future__ import annotations

from pathlib import Path
from typing import Dict, Any
import yaml

__all__ = [
    "load_config",
    "output_dir",
]

# ────────────────────────────────────────────────
# Load & merge config
# ────────────────────────────────────────────────
_DEFAULT_CFG_PATH = Path(__file__).parent.parent / "config" / "default_config.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _merge_dict(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive dict merge (src overwrites dst)."""
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            dst[k] = _merge_dict(dst[k], v)
        else:
            dst[k] = v
    return dst


def load_config(project_cfg_path: Path | str | None = None) -> Dict[str, Any]:
    """Return merged config dict (default <- project).

    A directory argument means ``<dir>/config.yaml``; ``None`` returns the
    defaults only. Relative file paths in the project file are resolved
    against the project file's folder.
    """
    cfg = _read_yaml(_DEFAULT_CFG_PATH)
    if project_cfg_path is None:
        return cfg
    project_yaml = Path(project_cfg_path)
    if project_yaml.is_dir():
        project_yaml = project_yaml / "config.yaml"
    project_cfg = _read_yaml(project_yaml)
    cfg = _merge_dict(cfg, project_cfg)
    _resolve_paths(cfg, project_yaml.parent)
    return cfg


def _resolve_paths(cfg: Dict[str, Any], base: Path) -> None:
    def fix(value):
        if not value:
            return value
        p = Path(value)
        return str(p if p.is_absolute() else base / p)

    calib = cfg.get("calibration", {}) or {}
    for key in ("dark_file", "sat_file"):
        calib[key] = fix(calib.get(key))
    chart = cfg.get("chart", {}) or {}
    chart["roi_file"] = fix(chart.get("roi_file"))
    inp = cfg.get("input", {}) or {}
    inp["files"] = [fix(f) for f in inp.get("files", []) or []]
    out = cfg.get("output", {}) or {}
    out["output_dir"] = fix(out.get("output_dir", "output"))
    cfg["calibration"], cfg["chart"], cfg["input"], cfg["output"] = calib, chart, inp, out


# ────────────────────────────────────────────────
# Accessors
# ────────────────────────────────────────────────
def output_dir(cfg: Dict[str, Any]) -> Path:
    """Return the configured output folder."""

    return Path(cfg.get("output", {}).get("output_dir") or "output")
