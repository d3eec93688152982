import logging
import os
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_state_dir

from ..errors import RunConfigError
from .compat import env_bool, env_float

logger = logging.getLogger(__name__)

__all__ = [
    "HISTORY_DIR",
    "LOG_PATH",
    "WRK_EXECUTABLE",
    "BenchSettings",
]

# External load generator (name on PATH or explicit path)
WRK_EXECUTABLE = os.getenv("WRK_BENCH_EXECUTABLE", "").strip() or "wrk"

# Extra wall-clock seconds granted on top of the run duration when a caller
# builds a RunConfig without an explicit timeout
TIMEOUT_GRACE_SECONDS = env_float("WRK_BENCH_TIMEOUT_GRACE_SECONDS", default=30.0)
if TIMEOUT_GRACE_SECONDS <= 0:
    logger.warning(
        "WRK_BENCH_TIMEOUT_GRACE_SECONDS must be positive, got %g; using 30", TIMEOUT_GRACE_SECONDS
    )
    TIMEOUT_GRACE_SECONDS = 30.0

# A run whose errors exceed this share of total requests is not healthy
MAX_ERROR_PERCENTAGE = env_float("WRK_BENCH_MAX_ERROR_PERCENTAGE", default=2.0)

# Default run shape (threads/connections/seconds)
DEFAULT_THREADS = 8
DEFAULT_CONNECTIONS = 32
DEFAULT_DURATION_SECONDS = 30.0

# State directory:
# - Linux: ~/.local/state/wrk-bench
# - macOS: ~/Library/Application Support/wrk-bench
# - Windows: %LOCALAPPDATA%\wrk-bench
STATE_DIR = Path(user_state_dir("wrk-bench", appauthor=False))
HISTORY_DIR = Path(os.getenv("WRK_BENCH_HISTORY_DIR", "").strip() or STATE_DIR / "history")

# Local event logging (default: off)
# Options: off (disabled), safe (enabled with redaction), full (enabled without redaction)
_LOGGING_RAW = os.getenv("WRK_BENCH_LOGGING", "off").strip().lower()
EVENT_LOGGING = _LOGGING_RAW in ("safe", "full", "1", "true", "yes")
EVENT_LOG_REDACT = _LOGGING_RAW != "full"
LOG_DIR = STATE_DIR
LOG_PATH = LOG_DIR / "wrk-bench.log"
MAX_LOG_SIZE_BYTES = 10 * 1024 * 1024

# Pass --latency so wrk prints the percentile distribution
LATENCY_DETAIL = env_bool("WRK_BENCH_LATENCY", default=True)


@dataclass(frozen=True)
class BenchSettings:
    executable: str = WRK_EXECUTABLE
    history_dir: Path = HISTORY_DIR
    timeout_grace_s: float = TIMEOUT_GRACE_SECONDS
    max_error_percentage: float = MAX_ERROR_PERCENTAGE

    @classmethod
    def from_env(cls) -> "BenchSettings":
        executable = os.getenv("WRK_BENCH_EXECUTABLE", "").strip() or WRK_EXECUTABLE

        history_raw = os.getenv("WRK_BENCH_HISTORY_DIR", "").strip()
        history_dir = Path(history_raw).expanduser().resolve() if history_raw else HISTORY_DIR
        if history_dir.exists() and not history_dir.is_dir():
            raise RunConfigError(f"WRK_BENCH_HISTORY_DIR is not a directory: {history_dir}")
        if history_raw:
            logger.debug("Using WRK_BENCH_HISTORY_DIR: %s", history_dir)

        grace = env_float("WRK_BENCH_TIMEOUT_GRACE_SECONDS", default=TIMEOUT_GRACE_SECONDS)
        if grace <= 0:
            raise RunConfigError(
                f"WRK_BENCH_TIMEOUT_GRACE_SECONDS must be positive, got {grace:g}"
            )

        max_errors = env_float("WRK_BENCH_MAX_ERROR_PERCENTAGE", default=MAX_ERROR_PERCENTAGE)
        if not 0 <= max_errors <= 100:
            raise RunConfigError(
                f"WRK_BENCH_MAX_ERROR_PERCENTAGE must be within 0..100, got {max_errors:g}"
            )

        return cls(
            executable=executable,
            history_dir=history_dir,
            timeout_grace_s=grace,
            max_error_percentage=max_errors,
        )
