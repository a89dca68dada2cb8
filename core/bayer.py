# core/bayer.py – Bayer channel tags and 2x2 sub-plane extraction

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Tuple

import numpy as np

__all__ = [
    "Channel",
    "BAYER_PATTERNS",
    "CHANNEL_ORDER",
    "channel_offset",
    "extract_channel",
    "normalize_pattern",
]


class Channel(str, Enum):
    R = "R"
    G1 = "G1"
    G2 = "G2"
    B = "B"
    AVG = "AVG"


# measured planes, in the canonical reporting order
CHANNEL_ORDER: Tuple[Channel, ...] = (Channel.R, Channel.G1, Channel.G2, Channel.B)

# (row, col) of each colour inside the 2x2 cell
BAYER_PATTERNS: Dict[str, Dict[Channel, Tuple[int, int]]] = {
    "RGGB": {Channel.R: (0, 0), Channel.G1: (0, 1), Channel.G2: (1, 0), Channel.B: (1, 1)},
    "BGGR": {Channel.R: (1, 1), Channel.G1: (1, 0), Channel.G2: (0, 1), Channel.B: (0, 0)},
    "GRBG": {Channel.R: (0, 1), Channel.G1: (0, 0), Channel.G2: (1, 1), Channel.B: (1, 0)},
    "GBRG": {Channel.R: (1, 0), Channel.G1: (1, 1), Channel.G2: (0, 0), Channel.B: (0, 1)},
}


def normalize_pattern(pattern: str | None) -> str:
    """Return an upper-case pattern tag, falling back to RGGB."""
    tag = str(pattern or "").upper()
    if tag not in BAYER_PATTERNS:
        logging.debug("Unknown Bayer pattern %r; using RGGB", pattern)
        return "RGGB"
    return tag


def channel_offset(pattern: str | None, channel: Channel) -> Tuple[int, int]:
    if channel == Channel.AVG:
        raise ValueError("AVG is a pooled channel and has no plane offset")
    return BAYER_PATTERNS[normalize_pattern(pattern)][Channel(channel)]


def extract_channel(
    image: np.ndarray, pattern: str | None, channel: Channel
) -> np.ndarray:
    """Return the half-resolution plane of ``channel`` (no interpolation).

    Odd trailing rows/columns are dropped so every plane has
    ``H//2 x W//2`` pixels.
    """
    if image.ndim != 2:
        raise ValueError("expected a single-plane image")
    h, w = image.shape
    h2, w2 = (h // 2) * 2, (w // 2) * 2
    r, c = channel_offset(pattern, channel)
    return image[r:h2:2, c:w2:2]
