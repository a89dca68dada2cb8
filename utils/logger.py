import logging
import threading
from pathlib import Path
from typing import Optional, Dict, Any, List

import psutil

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


class RunLogCollector(logging.Handler):
    """Keep formatted records of one run for the run log file."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._lines: List[str] = []
        self._lines_lock = threading.Lock()
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._lines_lock:
            self._lines.append(msg)

    @property
    def lines(self) -> List[str]:
        with self._lines_lock:
            return list(self._lines)

    def __enter__(self) -> "RunLogCollector":
        logging.getLogger().addHandler(self)
        return self

    def __exit__(self, *exc) -> None:
        logging.getLogger().removeHandler(self)


def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Configure root logger with optional file output."""
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
    )


def apply_logging_config(cfg: Dict[str, Any]) -> None:
    """Set log level from config dictionary."""
    level_name = str(cfg.get("logging", {}).get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.getLogger().setLevel(level)


def log_memory_usage(prefix: str = "") -> None:
    """Log the resident memory of this process."""
    try:
        mem_mb = psutil.Process().memory_info().rss / 1024**2
    except psutil.Error as exc:
        logging.debug("Failed to log memory usage: %s", exc)
        return
    logging.info("%sMemory usage: %.2f MB", prefix, mem_mb)
