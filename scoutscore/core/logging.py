"""Console logging plus an in-memory flight recorder dumped when a scoring run times out."""

import logging
import sys
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from scoutscore.core.config import get_config

FLIGHT_LOG_CAPACITY = 50_000
DEFAULT_FORENSICS_DIR = Path.cwd() / "logs" / "forensics"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_flight_logger: "FlightLogger | None" = None
_console_handler: logging.Handler | None = None


def _dump_name(label: str, image_key: str | None, stamp: str) -> str:
    if image_key is None:
        return f"{label}_{stamp}.log"
    # image keys contain ':' and '/', neither is safe in a filename
    safe_key = "".join(c if c.isalnum() else "_" for c in image_key)[:64]
    return f"{label}_{safe_key}_{stamp}.log"


class FlightLogger(logging.Handler):
    """Ring buffer of the most recent records at every level; dump() writes them to forensics_dir."""

    def __init__(self, capacity: int = FLIGHT_LOG_CAPACITY, forensics_dir: str | Path | None = None) -> None:
        super().__init__(level=logging.DEBUG)
        self._records: deque[logging.LogRecord] = deque(maxlen=capacity)
        self.forensics_dir = Path(forensics_dir) if forensics_dir is not None else DEFAULT_FORENSICS_DIR

    def emit(self, record: logging.LogRecord) -> None:
        self._records.append(record)

    def dump(self, label: str, image_key: str | None = None) -> str:
        self.forensics_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        path = self.forensics_dir / _dump_name(label, image_key, stamp)
        fmt = self.formatter or logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
        lines = [fmt.format(r) for r in list(self._records)]
        path.write_text("\n".join(lines) + "\n" if lines else "")
        return str(path)

    def __len__(self) -> int:
        return len(self._records)


def get_flight_logger() -> FlightLogger | None:
    return _flight_logger


def setup_logging() -> None:
    """
    Install a stderr console handler at the configured log_level and a FlightLogger
    capturing everything. Calling it again replaces only the handlers it installed.
    """
    global _flight_logger, _console_handler
    cfg = get_config()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for previous in (_console_handler, _flight_logger):
        if previous is not None:
            root.removeHandler(previous)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.getLevelName(cfg.log_level.upper()))
    console.setFormatter(formatter)
    root.addHandler(console)
    _console_handler = console

    flight = FlightLogger(forensics_dir=cfg.forensics_dir)
    flight.setFormatter(formatter)
    root.addHandler(flight)
    _flight_logger = flight
