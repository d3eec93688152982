"""Parser for the human-readable report printed by wrk.

The report is scanned line by line. Each stripped line is matched against a
table of case-insensitive prefixes; unknown lines are skipped so new
informational output from wrk (or wrk2) does not break parsing. Durations are
normalized to nanoseconds, sizes to bytes and rates to per-second values.

Recognized lines::

    Latency     1.23ms  456.00us  12.34ms   89.12%
         50%    1.10ms
      12345 requests in 10.00s, 1.23MB read
      Socket errors: connect 0, read 0, write 0, timeout 12
      Non-2xx or 3xx responses: 5
    Requests/sec:   1234.50
    Transfer/sec:    123.45KB
    Errors: total 17, connect 0, read 0, write 0, timeout 12, status 5
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from .errors import ParseError
from .models import BenchmarkResult, ErrorCounts, RawOutput, percentile_label

logger = logging.getLogger(__name__)

DURATION_UNITS_NS: dict[str, float] = {
    "ns": 1.0,
    "us": 1e3,
    "µs": 1e3,
    "ms": 1e6,
    "s": 1e9,
    "m": 60e9,
    "h": 3600e9,
}

SIZE_UNITS_BYTES: dict[str, float] = {
    "b": 1.0,
    "kb": 1024.0,
    "mb": 1024.0**2,
    "gb": 1024.0**3,
    "tb": 1024.0**4,
    "pb": 1024.0**5,
}

COUNT_UNITS: dict[str, float] = {
    "": 1.0,
    "k": 1e3,
    "m": 1e6,
    "g": 1e9,
}

_NUMBER = re.compile(r"^(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")
_VALUE_UNIT = re.compile(r"^([\d,]*\d(?:\.\d+)?)([^\d\s.,]*)$")
_PERCENTILE_LINE = re.compile(r"^(\d+(?:\.\d+)?)%\s+(\S+)$")
_TOTALS_LINE = re.compile(
    r"^(\S+)\s+requests\s+in\s+([^,\s]+)\s*,\s*(\S+)\s+read$", re.IGNORECASE
)
_COUNTER = re.compile(
    r"([a-z][a-z0-9-]*)\s+(\d{1,3}(?:,\d{3})+|\d+)(?=\s*(?:,|$))", re.IGNORECASE
)


def parse_number(text: str, line: str) -> float:
    """Parse a locale-invariant decimal, tolerating ``,`` thousands separators."""
    if not _NUMBER.match(text):
        raise ParseError(f"not a number: {text!r}", line)
    return float(text.replace(",", ""))


def _split_value_unit(token: str, line: str) -> tuple[float, str]:
    match = _VALUE_UNIT.match(token)
    if not match:
        raise ParseError(f"expected <number><unit>, got {token!r}", line)
    return parse_number(match.group(1), line), match.group(2)


def parse_duration_ns(token: str, line: str) -> float:
    value, unit = _split_value_unit(token, line)
    factor = DURATION_UNITS_NS.get(unit.lower())
    if factor is None:
        raise ParseError(f"unrecognized time unit {unit!r}", line)
    return value * factor


def parse_size_bytes(token: str, line: str) -> float:
    value, unit = _split_value_unit(token, line)
    factor = SIZE_UNITS_BYTES.get(unit.lower())
    if factor is None:
        raise ParseError(f"unrecognized size unit {unit!r}", line)
    return value * factor


def parse_count(token: str, line: str) -> int:
    value, unit = _split_value_unit(token, line)
    factor = COUNT_UNITS.get(unit.lower())
    if factor is None:
        raise ParseError(f"unrecognized count suffix {unit!r}", line)
    return int(round(value * factor))


def _parse_counters(text: str, line: str) -> dict[str, int]:
    counters = {
        match.group(1).lower(): int(parse_number(match.group(2), line))
        for match in _COUNTER.finditer(text)
    }
    if not counters:
        raise ParseError("no error counters found", line)
    return counters


@dataclass
class _ParseState:
    requests_per_sec: float | None = None
    transfer_bytes_per_sec: float | None = None
    total_requests: int | None = None
    elapsed_s: float | None = None
    bytes_read: int | None = None
    latency_ns: dict[str, float] = field(default_factory=dict)
    latency_avg_ns: float | None = None
    latency_stdev_ns: float | None = None
    latency_max_ns: float | None = None
    summary_errors: ErrorCounts | None = None
    socket_errors: dict[str, int] | None = None
    non_2xx: int | None = None


class OutputParser:
    """Turns captured wrk output into a :class:`BenchmarkResult`."""

    def __init__(self) -> None:
        # Checked in order; longer prefixes that share a start come first.
        self._handlers: tuple[tuple[str, Callable[[_ParseState, str, str], None]], ...] = (
            ("requests/sec:", self._on_requests_per_sec),
            ("transfer/sec:", self._on_transfer_per_sec),
            ("socket errors:", self._on_socket_errors),
            ("non-2xx or 3xx responses:", self._on_non_2xx),
            ("errors:", self._on_error_summary),
            ("latency", self._on_latency_stats),
        )

    def parse(
        self, raw: RawOutput, *, name: str, timestamp: datetime | None = None
    ) -> BenchmarkResult:
        state = _ParseState()
        for raw_line in raw.stdout.splitlines():
            line = raw_line.strip()
            if line:
                self._dispatch(state, line)
        return self._build(state, name, timestamp or datetime.now(UTC))

    def _dispatch(self, state: _ParseState, line: str) -> None:
        lowered = line.lower()
        for prefix, handler in self._handlers:
            if lowered.startswith(prefix):
                handler(state, line, line[len(prefix) :].strip())
                return

        match = _PERCENTILE_LINE.match(line)
        if match:
            label = percentile_label(match.group(1))
            # wrk2 repeats the distribution for uncorrected latency; keep the first
            if label not in state.latency_ns:
                state.latency_ns[label] = parse_duration_ns(match.group(2), line)
            return

        match = _TOTALS_LINE.match(line)
        if match:
            state.total_requests = parse_count(match.group(1), line)
            state.elapsed_s = parse_duration_ns(match.group(2), line) / 1e9
            state.bytes_read = int(round(parse_size_bytes(match.group(3), line)))

    def _on_requests_per_sec(self, state: _ParseState, line: str, rest: str) -> None:
        if not rest:
            raise ParseError("Requests/sec line has no value", line)
        state.requests_per_sec = parse_number(rest, line)

    def _on_transfer_per_sec(self, state: _ParseState, line: str, rest: str) -> None:
        if not rest:
            raise ParseError("Transfer/sec line has no value", line)
        state.transfer_bytes_per_sec = parse_size_bytes(rest, line)

    def _on_socket_errors(self, state: _ParseState, line: str, rest: str) -> None:
        state.socket_errors = _parse_counters(rest, line)

    def _on_non_2xx(self, state: _ParseState, line: str, rest: str) -> None:
        state.non_2xx = int(parse_number(rest, line))

    def _on_error_summary(self, state: _ParseState, line: str, rest: str) -> None:
        counters = _parse_counters(rest, line)
        errors = ErrorCounts(
            connect=counters.get("connect", 0),
            read=counters.get("read", 0),
            write=counters.get("write", 0),
            timeout=counters.get("timeout", 0),
            status=counters.get("status", 0),
        )
        if "total" in counters and counters["total"] != errors.total:
            raise ParseError(
                f"error total {counters['total']} does not match categories ({errors.total})",
                line,
            )
        state.summary_errors = errors

    def _on_latency_stats(self, state: _ParseState, line: str, rest: str) -> None:
        tokens = rest.split()
        # "Latency Distribution" headers and similar carry no values
        if len(tokens) < 3 or not tokens[0][:1].isdigit():
            return
        state.latency_avg_ns = parse_duration_ns(tokens[0], line)
        state.latency_stdev_ns = parse_duration_ns(tokens[1], line)
        state.latency_max_ns = parse_duration_ns(tokens[2], line)

    def _resolve_errors(self, state: _ParseState) -> ErrorCounts:
        if state.summary_errors is not None:
            return state.summary_errors
        if state.socket_errors is None:
            raise ParseError("missing error summary line (Errors: or Socket errors:)")
        socket = state.socket_errors
        return ErrorCounts(
            connect=socket.get("connect", 0),
            read=socket.get("read", 0),
            write=socket.get("write", 0),
            timeout=socket.get("timeout", 0),
            status=state.non_2xx or 0,
        )

    def _build(self, state: _ParseState, name: str, timestamp: datetime) -> BenchmarkResult:
        if state.requests_per_sec is None:
            raise ParseError("missing Requests/sec line")
        if state.transfer_bytes_per_sec is None:
            raise ParseError("missing Transfer/sec line")
        if state.total_requests is None or state.elapsed_s is None:
            raise ParseError("missing total requests line (N requests in ...)")
        errors = self._resolve_errors(state)
        if errors.total > state.total_requests:
            raise ParseError(
                f"total errors ({errors.total}) exceed total requests ({state.total_requests})"
            )
        if not state.latency_ns:
            logger.debug("No latency percentiles in output for %s", name)

        return BenchmarkResult(
            name=name,
            timestamp=timestamp,
            requests_per_sec=state.requests_per_sec,
            transfer_bytes_per_sec=state.transfer_bytes_per_sec,
            total_requests=state.total_requests,
            errors=errors,
            elapsed_s=state.elapsed_s,
            latency_ns=dict(state.latency_ns),
            latency_avg_ns=state.latency_avg_ns,
            latency_stdev_ns=state.latency_stdev_ns,
            latency_max_ns=state.latency_max_ns,
            bytes_read=state.bytes_read,
        )


__all__ = [
    "OutputParser",
    "parse_count",
    "parse_duration_ns",
    "parse_number",
    "parse_size_bytes",
]
