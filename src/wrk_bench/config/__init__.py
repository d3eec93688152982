"""Configuration module for wrk-bench."""

from pathlib import Path

import yaml

from .settings import (
    DEFAULT_CONNECTIONS,
    DEFAULT_DURATION_SECONDS,
    DEFAULT_THREADS,
    HISTORY_DIR,
    LATENCY_DETAIL,
    LOG_DIR,
    LOG_PATH,
    MAX_ERROR_PERCENTAGE,
    MAX_LOG_SIZE_BYTES,
    TIMEOUT_GRACE_SECONDS,
    WRK_EXECUTABLE,
    BenchSettings,
)

# Load defaults.yaml
_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
with _DEFAULTS_PATH.open(encoding="utf-8") as f:
    _DEFAULTS = yaml.safe_load(f)

# Raw threshold specs, parsed into Threshold objects by wrk_bench.analysis
DEFAULT_THRESHOLD_SPECS: dict[str, str] = {
    str(k): str(v) for k, v in _DEFAULTS["thresholds"].items()
}
EXPONENTIAL_THREADS: tuple[int, ...] = tuple(_DEFAULTS["exponential"]["threads"])
EXPONENTIAL_CONNECTIONS: tuple[int, ...] = tuple(_DEFAULTS["exponential"]["connections"])

__all__ = [
    # Settings
    "DEFAULT_CONNECTIONS",
    "DEFAULT_DURATION_SECONDS",
    "DEFAULT_THREADS",
    "HISTORY_DIR",
    "LATENCY_DETAIL",
    "LOG_DIR",
    "LOG_PATH",
    "MAX_ERROR_PERCENTAGE",
    "MAX_LOG_SIZE_BYTES",
    "TIMEOUT_GRACE_SECONDS",
    "WRK_EXECUTABLE",
    "BenchSettings",
    # Bundled defaults
    "DEFAULT_THRESHOLD_SPECS",
    "EXPONENTIAL_CONNECTIONS",
    "EXPONENTIAL_THREADS",
]
