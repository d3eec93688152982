import os
import stat
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from wrk_bench.models import BenchmarkResult, ErrorCounts

WRK_OUTPUT = """\
Running 10s test @ http://127.0.0.1:8080/api
  2 threads and 32 connections
  Thread Stats   Avg      Stdev     Max   +/- Stdev
    Latency     1.50ms  500.00us  20.00ms   90.00%
    Req/Sec    10.00k     1.00k   12.00k    70.00%
  Latency Distribution
     50%    1.20ms
     75%    1.80ms
     90%    2.50ms
     99%    5.00ms
  200000 requests in 10.00s, 25.00MB read
Requests/sec:  20000.00
Transfer/sec:      2.50MB
Errors: total 0, connect 0, read 0, write 0, timeout 0, status 0
"""

WRK_OUTPUT_SOCKET_ERRORS = """\
Running 1s test @ http://127.0.0.1:8080/
  1 threads and 4 connections
  Thread Stats   Avg      Stdev     Max   +/- Stdev
    Latency   812.00us  120.00us   3.10ms   75.00%
    Req/Sec     1.00k    50.00     1.10k    80.00%
  1000 requests in 1.00s, 100.00KB read
  Socket errors: connect 1, read 2, write 0, timeout 3
  Non-2xx or 3xx responses: 4
Requests/sec:   1000.00
Transfer/sec:    100.00KB
"""


@pytest.fixture(autouse=True)
def _isolate_event_log(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep the JSONL event log off and out of the user's state directory."""
    log_path = tmp_path / "events" / "wrk-bench.log"
    monkeypatch.setattr("wrk_bench.config.settings.EVENT_LOGGING", False)
    monkeypatch.setattr("wrk_bench.config.settings.LOG_PATH", log_path)
    return log_path


@pytest.fixture
def wrk_output() -> str:
    return WRK_OUTPUT


@pytest.fixture
def wrk_output_socket_errors() -> str:
    return WRK_OUTPUT_SOCKET_ERRORS


@pytest.fixture
def make_result() -> Callable[..., BenchmarkResult]:
    def _make(
        name: str = "api",
        *,
        rps: float = 1000.0,
        transfer: float = 100_000.0,
        requests: int = 10_000,
        errors: ErrorCounts | None = None,
        p99_ns: float | None = 5e6,
        timestamp: datetime | None = None,
    ) -> BenchmarkResult:
        latency = {"50": 1e6, "99": p99_ns} if p99_ns is not None else {}
        return BenchmarkResult(
            name=name,
            timestamp=timestamp or datetime(2026, 1, 1, tzinfo=UTC),
            requests_per_sec=rps,
            transfer_bytes_per_sec=transfer,
            total_requests=requests,
            errors=errors or ErrorCounts(),
            elapsed_s=10.0,
            latency_ns=latency,
            latency_avg_ns=1.5e6,
            latency_max_ns=2e7,
        )

    return _make


_FAKE_WRK = """\
#!{python}
import json
import sys
import time
from pathlib import Path

args = sys.argv[1:]
Path({argv_log!r}).write_text(json.dumps(args), encoding="utf-8")
script = Path(args[args.index("-s") + 1])
Path({script_copy!r}).write_text(script.read_text(encoding="utf-8"), encoding="utf-8")
sys.stdout.write({stdout!r})
sys.stdout.flush()
sys.stderr.write({stderr!r})
sys.stderr.flush()
time.sleep({sleep!r})
sys.exit({exit_code!r})
"""


@pytest.fixture
def fake_wrk(tmp_path: Path) -> Callable[..., Path]:
    """Write an executable stand-in for wrk.

    It records its argv to ``argv.json`` and the script it was given to
    ``script.lua`` next to itself, prints the canned output, then exits.
    """
    if sys.platform == "win32":
        pytest.skip("fake wrk relies on a shebang line")

    def _make(
        stdout: str = WRK_OUTPUT, *, stderr: str = "", exit_code: int = 0, sleep: float = 0.0
    ) -> Path:
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        path = bin_dir / "wrk"
        path.write_text(
            _FAKE_WRK.format(
                python=sys.executable,
                argv_log=str(bin_dir / "argv.json"),
                script_copy=str(bin_dir / "script.lua"),
                stdout=stdout,
                stderr=stderr,
                sleep=sleep,
                exit_code=exit_code,
            ),
            encoding="utf-8",
        )
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        assert os.access(path, os.X_OK)
        return path

    return _make
