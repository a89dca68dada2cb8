# core/loader.py – Read-only RAW frame view (rawpy / tifffile) with EXIF metadata

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import exifread
import numpy as np
import rawpy
import tifffile

from core.bayer import normalize_pattern

__all__ = ["RawFrame", "RawLoadError", "load_raw_frame", "TIFF_SUFFIXES"]

TIFF_SUFFIXES = {".tif", ".tiff"}


class RawLoadError(RuntimeError):
    """A capture could not be decoded."""


@dataclass(frozen=True)
class RawFrame:
    """Decoded sensor mosaic plus the metadata the analysis needs."""

    path: Path
    raw_image: np.ndarray
    top_margin: int = 0
    left_margin: int = 0
    active_width: int = 0
    active_height: int = 0
    filter_pattern: str = "RGGB"
    iso_speed: float = 0.0
    camera_model: str = ""
    bit_depth: Optional[int] = None
    orientation: int = 0

    # ───────── accessors

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def width(self) -> int:
        return int(self.raw_image.shape[1])

    @property
    def height(self) -> int:
        return int(self.raw_image.shape[0])

    @property
    def active_image(self) -> np.ndarray:
        t, l = self.top_margin, self.left_margin
        return self.raw_image[t : t + self.active_height, l : l + self.active_width]

    @property
    def sensor_resolution_mpx(self) -> float:
        return self.width * self.height / 1e6

    # ───────── constructors

    @classmethod
    def from_array(
        cls,
        image: np.ndarray,
        path: Path | str = "frame.raw",
        *,
        filter_pattern: str = "RGGB",
        iso_speed: float = 0.0,
        camera_model: str = "",
        bit_depth: Optional[int] = None,
        top_margin: int = 0,
        left_margin: int = 0,
        active_width: Optional[int] = None,
        active_height: Optional[int] = None,
        orientation: int = 0,
    ) -> "RawFrame":
        img = np.asarray(image)
        if img.ndim != 2:
            raise RawLoadError(f"{path}: expected a single-plane mosaic, got {img.shape}")
        img = np.ascontiguousarray(img, dtype=np.uint16)
        img.setflags(write=False)
        h, w = img.shape
        return cls(
            path=Path(path),
            raw_image=img,
            top_margin=top_margin,
            left_margin=left_margin,
            active_width=w - left_margin if active_width is None else active_width,
            active_height=h - top_margin if active_height is None else active_height,
            filter_pattern=normalize_pattern(filter_pattern),
            iso_speed=float(iso_speed or 0.0),
            camera_model=camera_model,
            bit_depth=bit_depth,
            orientation=orientation,
        )


# ───────── metadata helpers


def _read_exif(path: Path) -> tuple[float, str]:
    """Return ``(iso, camera_model)``; unknown values become ``0`` / ``""``."""
    try:
        with path.open("rb") as fh:
            tags = exifread.process_file(fh, details=False)
    except Exception as exc:
        logging.debug("EXIF read failed for %s: %s", path, exc)
        return 0.0, ""
    iso = 0.0
    iso_tag = tags.get("EXIF ISOSpeedRatings") or tags.get("EXIF PhotographicSensitivity")
    if iso_tag is not None:
        try:
            iso = float(iso_tag.values[0])
        except (IndexError, TypeError, ValueError):
            iso = 0.0
    model = str(tags.get("Image Model", "")).strip()
    return iso, model


def _pattern_from_rawpy(raw) -> str:
    desc = raw.color_desc.decode("ascii")
    try:
        return "".join(desc[i] for i in np.asarray(raw.raw_pattern).reshape(-1)[:4])
    except (IndexError, TypeError):
        return "RGGB"


def _load_rawpy(path: Path) -> RawFrame:
    try:
        with rawpy.imread(str(path)) as raw:
            image = np.array(raw.raw_image, dtype=np.uint16, copy=True)
            sizes = raw.sizes
            pattern = _pattern_from_rawpy(raw)
            white = float(getattr(raw, "white_level", 0) or 0)
    except (rawpy.LibRawError, OSError, ValueError) as exc:
        raise RawLoadError(f"Cannot decode RAW file {path}: {exc}") from exc
    bit_depth = int(math.ceil(math.log2(white))) if white > 1 else None
    iso, model = _read_exif(path)
    frame = RawFrame.from_array(
        image,
        path,
        filter_pattern=pattern,
        iso_speed=iso,
        camera_model=model,
        bit_depth=bit_depth,
        top_margin=int(sizes.top_margin),
        left_margin=int(sizes.left_margin),
        active_width=int(sizes.width),
        active_height=int(sizes.height),
        orientation=int(getattr(sizes, "flip", 0) or 0),
    )
    return frame


def _load_tiff(path: Path, pattern: str) -> RawFrame:
    try:
        image = tifffile.imread(str(path))
    except (OSError, ValueError) as exc:
        raise RawLoadError(f"Cannot read TIFF mosaic {path}: {exc}") from exc
    image = np.squeeze(image)
    if image.ndim != 2:
        raise RawLoadError(f"{path}: TIFF input must be a single 2-D plane")
    return RawFrame.from_array(image, path, filter_pattern=pattern)


# ───────── public api


def load_raw_frame(path: Path | str, *, tiff_pattern: str = "RGGB") -> RawFrame:
    """Load a RAW capture (or a 16-bit TIFF mosaic) as :class:`RawFrame`."""
    path = Path(path)
    if not path.is_file():
        raise RawLoadError(f"File not found: {path}")
    if path.suffix.lower() in TIFF_SUFFIXES:
        frame = _load_tiff(path, tiff_pattern)
    else:
        frame = _load_rawpy(path)
    logging.debug(
        "Loaded %s: %dx%d active %dx%d pattern=%s iso=%g bits=%s",
        frame.filename,
        frame.width,
        frame.height,
        frame.active_width,
        frame.active_height,
        frame.filter_pattern,
        frame.iso_speed,
        frame.bit_depth,
    )
    return frame
