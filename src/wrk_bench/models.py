"""Data model shared by the benchmark pipeline stages."""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .config import settings
from .errors import RunConfigError, ScriptGenerationError

SCHEMA_VERSION = 1


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @classmethod
    def parse(cls, value: "HttpMethod | str") -> "HttpMethod":
        if isinstance(value, HttpMethod):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ScriptGenerationError(f"Unsupported HTTP method: {value!r}") from None


# Methods whose requests normally carry no body
BODYLESS_METHODS = frozenset(
    {HttpMethod.GET, HttpMethod.HEAD, HttpMethod.OPTIONS, HttpMethod.DELETE}
)


@dataclass(frozen=True)
class RequestSpec:
    """The HTTP request every wrk iteration sends."""

    url: str
    method: HttpMethod | str = HttpMethod.GET
    # Accepts a mapping or (name, value) pairs; stored as sorted pairs so the
    # spec stays immutable and hashable.
    headers: Mapping[str, str] | tuple[tuple[str, str], ...] = ()
    body: bytes | None = None
    content_type: str | None = None

    def __post_init__(self) -> None:
        pairs = sorted(dict(self.headers).items(), key=lambda kv: (kv[0].lower(), kv[0]))
        object.__setattr__(self, "headers", tuple(pairs))
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))

    def header_items(self) -> list[tuple[str, str]]:
        """Headers de-duplicated case-insensitively and sorted by lower-cased name.

        On a case-only collision the lexicographically greatest spelling wins,
        so the result never depends on insertion order.
        """
        merged: dict[str, tuple[str, str]] = {}
        for name, value in self.headers:
            merged[name.lower()] = (name, value)
        if self.content_type and "content-type" not in merged:
            merged["content-type"] = ("Content-Type", self.content_type)
        return [merged[key] for key in sorted(merged)]


@dataclass(frozen=True)
class RunConfig:
    """Parameters of one wrk execution.

    ``timeout_s`` defaults to the duration plus the configured grace period
    and must always exceed ``duration_s``.
    """

    duration_s: float = settings.DEFAULT_DURATION_SECONDS
    connections: int = settings.DEFAULT_CONNECTIONS
    threads: int = settings.DEFAULT_THREADS
    timeout_s: float | None = None
    executable: str = settings.WRK_EXECUTABLE
    latency: bool = settings.LATENCY_DETAIL

    def __post_init__(self) -> None:
        if not _is_positive_number(self.duration_s):
            raise RunConfigError(f"duration must be positive, got {self.duration_s!r}")
        if not _is_positive_int(self.connections):
            raise RunConfigError(
                f"connections must be a positive integer, got {self.connections!r}"
            )
        if not _is_positive_int(self.threads):
            raise RunConfigError(f"threads must be a positive integer, got {self.threads!r}")
        if self.threads > self.connections:
            raise RunConfigError(
                f"threads ({self.threads}) cannot exceed connections ({self.connections})"
            )
        if self.timeout_s is None:
            object.__setattr__(
                self, "timeout_s", float(self.duration_s) + settings.TIMEOUT_GRACE_SECONDS
            )
        # Checked after defaulting too: the grace period comes from the environment
        if not _is_positive_number(self.timeout_s) or self.timeout_s <= self.duration_s:
            raise RunConfigError(
                f"timeout ({self.timeout_s!r}s) must exceed duration ({self.duration_s:g}s)"
            )
        if not self.executable or not self.executable.strip():
            raise RunConfigError("executable must not be empty")

    @classmethod
    def from_settings(
        cls,
        bench_settings: settings.BenchSettings,
        *,
        duration_s: float = settings.DEFAULT_DURATION_SECONDS,
        connections: int = settings.DEFAULT_CONNECTIONS,
        threads: int = settings.DEFAULT_THREADS,
        timeout_s: float | None = None,
        latency: bool = settings.LATENCY_DETAIL,
    ) -> "RunConfig":
        """Run shape using the executable and timeout grace of ``bench_settings``."""
        if timeout_s is None and _is_positive_number(duration_s):
            timeout_s = float(duration_s) + bench_settings.timeout_grace_s
        return cls(
            duration_s=duration_s,
            connections=connections,
            threads=threads,
            timeout_s=timeout_s,
            executable=bench_settings.executable,
            latency=latency,
        )

    @property
    def duration_arg(self) -> str:
        # wrk only takes whole seconds
        return f"{math.ceil(self.duration_s)}s"

    def key(self) -> str:
        return f"{self.threads}-{self.connections}-{math.ceil(self.duration_s)}"

    def __str__(self) -> str:
        return (
            f"threads: {self.threads} connections: {self.connections} "
            f"duration: {math.ceil(self.duration_s)} secs"
        )


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_positive_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


@dataclass(frozen=True)
class ScriptText:
    """Generated Lua source plus the URL wrk is pointed at."""

    text: str
    url: str


@dataclass(frozen=True)
class RawOutput:
    stdout: str
    stderr: str = ""
    exit_code: int = 0
    elapsed_s: float = 0.0


@dataclass(frozen=True)
class ErrorCounts:
    connect: int = 0
    read: int = 0
    write: int = 0
    timeout: int = 0
    status: int = 0

    def __post_init__(self) -> None:
        for name in ("connect", "read", "write", "timeout", "status"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} error count cannot be negative")

    @property
    def total(self) -> int:
        return self.connect + self.read + self.write + self.timeout + self.status

    def to_dict(self) -> dict[str, int]:
        return {
            "connect": self.connect,
            "read": self.read,
            "write": self.write,
            "timeout": self.timeout,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ErrorCounts":
        return cls(
            connect=int(data.get("connect", 0)),
            read=int(data.get("read", 0)),
            write=int(data.get("write", 0)),
            timeout=int(data.get("timeout", 0)),
            status=int(data.get("status", 0)),
        )


def percentile_label(text: str) -> str:
    """Canonical label for a percentile: ``"50.000"`` -> ``"50"``, ``"99.90"`` -> ``"99.9"``."""
    return f"{float(text):g}"


@dataclass(frozen=True)
class BenchmarkResult:
    """Metrics of one completed wrk run.

    Latencies are nanoseconds, rates are per second. ``latency_ns`` maps
    percentile labels (``"50"``, ``"99.9"``, ...) to latency; percentiles that
    wrk did not report are absent rather than zero.
    """

    name: str
    timestamp: datetime
    requests_per_sec: float
    transfer_bytes_per_sec: float
    total_requests: int
    errors: ErrorCounts
    elapsed_s: float
    latency_ns: dict[str, float] = field(default_factory=dict)
    latency_avg_ns: float | None = None
    latency_stdev_ns: float | None = None
    latency_max_ns: float | None = None
    bytes_read: int | None = None

    def __post_init__(self) -> None:
        # Naive timestamps are taken as UTC so history periods can compare them
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=UTC))
        else:
            object.__setattr__(self, "timestamp", self.timestamp.astimezone(UTC))
        if self.requests_per_sec < 0 or self.transfer_bytes_per_sec < 0:
            raise ValueError("rates cannot be negative")
        if self.total_requests < 0:
            raise ValueError("total requests cannot be negative")
        if self.errors.total > self.total_requests:
            raise ValueError(
                f"total errors ({self.errors.total}) exceed total requests ({self.total_requests})"
            )

    @property
    def total_errors(self) -> int:
        return self.errors.total

    @property
    def successes(self) -> int:
        return self.total_requests - self.total_errors

    @property
    def error_percentage(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_errors / self.total_requests * 100.0

    def is_healthy(self, max_error_percentage: float = settings.MAX_ERROR_PERCENTAGE) -> bool:
        return self.error_percentage < max_error_percentage

    def metrics(self) -> dict[str, float]:
        """Flat metric name -> value map, the unit of regression comparison."""
        values: dict[str, float] = {
            "requests_per_sec": self.requests_per_sec,
            "transfer_bytes_per_sec": self.transfer_bytes_per_sec,
        }
        for label in sorted(self.latency_ns, key=float):
            values[f"latency_p{label}"] = self.latency_ns[label]
        if self.latency_avg_ns is not None:
            values["latency_avg"] = self.latency_avg_ns
        if self.latency_max_ns is not None:
            values["latency_max"] = self.latency_max_ns
        values["error_percentage"] = self.error_percentage
        return values

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
            "requests_per_sec": self.requests_per_sec,
            "transfer_bytes_per_sec": self.transfer_bytes_per_sec,
            "total_requests": self.total_requests,
            "errors": self.errors.to_dict(),
            "elapsed_s": self.elapsed_s,
            "latency_ns": dict(self.latency_ns),
            "latency_avg_ns": self.latency_avg_ns,
            "latency_stdev_ns": self.latency_stdev_ns,
            "latency_max_ns": self.latency_max_ns,
            "bytes_read": self.bytes_read,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BenchmarkResult":
        """Build a result from ``to_dict()`` output; unknown keys are ignored."""
        return cls(
            name=str(data["name"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            requests_per_sec=float(data["requests_per_sec"]),
            transfer_bytes_per_sec=float(data["transfer_bytes_per_sec"]),
            total_requests=int(data["total_requests"]),
            errors=ErrorCounts.from_dict(data.get("errors") or {}),
            elapsed_s=float(data["elapsed_s"]),
            latency_ns={str(k): float(v) for k, v in (data.get("latency_ns") or {}).items()},
            latency_avg_ns=_optional_float(data.get("latency_avg_ns")),
            latency_stdev_ns=_optional_float(data.get("latency_stdev_ns")),
            latency_max_ns=_optional_float(data.get("latency_max_ns")),
            bytes_read=None if data.get("bytes_read") is None else int(data["bytes_read"]),
        )


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


__all__ = [
    "BODYLESS_METHODS",
    "SCHEMA_VERSION",
    "BenchmarkResult",
    "ErrorCounts",
    "HttpMethod",
    "RawOutput",
    "RequestSpec",
    "RunConfig",
    "ScriptText",
    "percentile_label",
]
