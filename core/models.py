# core/models.py – Value types passed between the analysis stages

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from core.bayer import Channel

__all__ = [
    "Calibration",
    "PatchAnalysisResult",
    "SnrCurve",
    "DynamicRangeResult",
    "FrameResult",
    "RunReport",
]


@dataclass(frozen=True)
class Calibration:
    black_level: float
    saturation_level: float

    def __post_init__(self) -> None:
        if not self.saturation_level > self.black_level + 1e-9:
            raise ValueError(
                f"saturation level {self.saturation_level} must exceed "
                f"black level {self.black_level}"
            )


@dataclass
class PatchAnalysisResult:
    """Accepted patches of one frame/channel."""

    signal: np.ndarray
    noise: np.ndarray
    channels: List[Channel]
    max_pixel_value: float = 0.0
    overlay: Optional[np.ndarray] = None

    @property
    def samples(self) -> int:
        return int(self.signal.size)

    def sample_counts(self) -> Dict[Channel, int]:
        counts = {ch: 0 for ch in (Channel.R, Channel.G1, Channel.G2, Channel.B)}
        for ch in self.channels:
            if ch in counts:
                counts[ch] += 1
        return counts

    @classmethod
    def empty(cls) -> "PatchAnalysisResult":
        return cls(np.empty(0), np.empty(0), [])


@dataclass(frozen=True)
class SnrCurve:
    filename: str
    channel: Channel
    label: str
    camera_model: str
    signal_ev: np.ndarray
    snr_db: np.ndarray
    coefficients: np.ndarray
    iso: float = 0.0


@dataclass(frozen=True)
class DynamicRangeResult:
    filename: str
    channel: Channel
    iso: float
    dr_values_ev: Dict[float, float]
    samples_R: int = 0
    samples_G1: int = 0
    samples_G2: int = 0
    samples_B: int = 0

    @property
    def patches_used(self) -> int:
        return self.samples_R + self.samples_G1 + self.samples_G2 + self.samples_B


@dataclass
class FrameResult:
    """Output of one frame; empty when the frame failed."""

    dr_results: List[DynamicRangeResult] = field(default_factory=list)
    curves: List[SnrCurve] = field(default_factory=list)
    overlay: Optional[np.ndarray] = None
    max_signal: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.dr_results


@dataclass
class RunReport:
    dr_results: List[DynamicRangeResult] = field(default_factory=list)
    curves: List[SnrCurve] = field(default_factory=list)
    debug_image: Optional[np.ndarray] = None
    coverage: Dict[Tuple[str, str], Dict[float, bool]] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.dr_results and not self.curves
