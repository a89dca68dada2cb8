"""Column names and number formats shared by the report writers."""

from __future__ import annotations

METRIC_UNITS: dict[str, str] = {
    "Dynamic Range": "EV",
    "SNR threshold": "dB",
    "Sensor resolution": "Mpx",
    "Black level": "DN",
    "Saturation level": "DN",
}

DETAILED_HEADER = [
    "raw_file",
    "SNRthreshold_db",
    "ISO",
    "raw_channel",
    "samples_R",
    "samples_G1",
    "samples_G2",
    "samples_B",
    "DR_EV",
]


def format_metric(name: str) -> str:
    """Return metric label with unit in parentheses."""

    unit = METRIC_UNITS.get(name, "")
    return f"{name} ({unit})" if unit else name


def format_dr_column(threshold_db: float) -> str:
    """CSV column title for one threshold, e.g. ``DR(12.0dB)``."""

    return f"DR({threshold_db:.1f}dB)"


def format_ev(value: float | None) -> str:
    return f"{0.0 if value is None else value:.4f}"
